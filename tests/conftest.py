import numpy as np
import pandas as pd
import pytest

from paleodata import SampleSet
from paleodata.cleaning import assign_periods


def gradient_counts(n=12, n_taxa=6, seed=1, shift=1.0):
    """Counts of taxa with Gaussian responses along a gradient that moves with time."""
    rng = np.random.default_rng(seed)
    g = np.linspace(0.0, shift, n)
    optima = np.linspace(0.0, 1.0, n_taxa)
    mu = 40.0 * np.exp(-0.5 * ((g[:, None] - optima[None, :]) / 0.3) ** 2) + 1.0
    counts = rng.poisson(mu)
    index = pd.Index([f"S{i:02d}" for i in range(n)], name="sample_id")
    return pd.DataFrame(counts, index=index, columns=[f"taxon_{j}" for j in range(n_taxa)]).astype(float), g


@pytest.fixture
def gradient():
    counts, g = gradient_counts()
    return counts, pd.Series(g, index=counts.index, name="gradient")


@pytest.fixture
def core():
    """Ten samples, years 0..900: three stable reference samples, then steady divergence."""
    rng = np.random.default_rng(7)
    years = np.arange(10) * 100.0
    n_taxa = 8
    base = np.array([50, 40, 30, 20, 10, 5, 3, 2], dtype=float)
    rows = []
    for i in range(10):
        step = max(0, i - 2)
        weights = base * np.exp(-0.45 * step * np.linspace(0.0, 1.0, n_taxa)[::-1])
        weights = weights + 6.0 * step * np.linspace(0.0, 1.0, n_taxa)
        rows.append(rng.poisson(weights))
    index = pd.Index([f"C{i}" for i in range(10)], name="sample_id")
    species = pd.DataFrame(np.array(rows, dtype=float), index=index,
                           columns=[f"taxon_{j}" for j in range(n_taxa)])
    meta = pd.DataFrame({"site": "L1", "year": years, "depth": (9 - np.arange(10)) * 2.0}, index=index)
    meta["period"] = assign_periods(meta["year"], (300.0, 600.0), ("reference", "middle", "late"))
    return SampleSet(meta=meta, species=species)
