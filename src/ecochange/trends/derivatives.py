"""
First derivatives of a fitted smooth trend with simultaneous confidence bands.

A period of significant change is where the band around the derivative
excludes zero: increasing when the whole band is above zero, decreasing
when it is below.
"""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import pandas as pd

from .smooth import SmoothTrend

logger = logging.getLogger(__name__)


def derivative_matrix(model: SmoothTrend, grid: np.ndarray) -> np.ndarray:
    """Linear map from the spline coefficients to f'(grid), by central differences."""
    lo, hi = model.range
    eps = 1e-7 * max(hi - lo, 1.0)
    # stay inside the basis range at the ends
    lo_b, hi_b = model.knots[3], model.knots[-4]
    up = np.minimum(grid + eps, hi_b)
    down = np.maximum(grid - eps, lo_b)
    return (model.basis(up) - model.basis(down)) / (up - down)[:, None]


def derivatives(
    model: SmoothTrend,
    n: int = 200,
    level: float = 0.95,
    n_sim: int = 10000,
    seed: Optional[int] = None,
) -> pd.DataFrame:
    """
    Derivative of the smooth on `n` evenly spaced time points with a
    simultaneous `level` band.

    The critical value is the `level` quantile of max |(f'_sim - f') / se|
    over `n_sim` draws of the coefficients from their Bayesian posterior,
    so the band covers the whole derivative curve with probability `level`.

    Returns a table with columns: <time>, derivative, se, lower, upper, crit,
    significant, direction.
    """
    if not 0 < level < 1:
        raise ValueError(f"level must be in (0, 1), got {level}")
    if n < 2 or n_sim < 1:
        raise ValueError("n must be >= 2 and n_sim >= 1")
    lo, hi = model.range
    grid = np.linspace(lo, hi, n)
    Xd = derivative_matrix(model, grid)
    deriv = Xd @ model.coef
    se = np.sqrt(np.maximum(np.einsum("ij,jk,ik->i", Xd, model.Vb, Xd), 0.0))

    rng = np.random.default_rng(seed)
    dev = rng.multivariate_normal(np.zeros(model.n_basis), model.Vb, size=n_sim, method="eigh")
    safe_se = np.where(se > 0, se, np.inf)
    max_abs = np.max(np.abs((dev @ Xd.T) / safe_se[None, :]), axis=1)
    crit = float(np.quantile(max_abs, level))

    table = pd.DataFrame({
        model.time: grid,
        "derivative": deriv,
        "se": se,
        "lower": deriv - crit * se,
        "upper": deriv + crit * se,
        "crit": crit,
    })
    table = classify_change(table)
    logger.info("Derivative of %s: crit=%.3f, %d/%d grid points significant",
                model.response, crit, int(table["significant"].sum()), n)
    return table


def classify_change(table: pd.DataFrame) -> pd.DataFrame:
    """Add `significant` (0 outside [lower, upper]) and `direction`."""
    out = table.copy()
    increase = out["lower"] > 0
    decrease = out["upper"] < 0
    out["significant"] = increase | decrease
    out["direction"] = np.select([increase, decrease], ["increase", "decrease"], default="none")
    return out


def change_periods(table: pd.DataFrame, time: Optional[str] = None) -> pd.DataFrame:
    """
    Contiguous runs of significant change as rows (start, end, direction).

    `time` defaults to the first column of the derivative table.
    """
    time = time or table.columns[0]
    if "direction" not in table.columns:
        table = classify_change(table)
    ordered = table.sort_values(time, kind="stable")
    direction = ordered["direction"].to_numpy()
    t = ordered[time].to_numpy()
    rows = []
    start = None
    for i, d in enumerate(direction):
        if start is not None and d != direction[start]:
            rows.append({"start": t[start], "end": t[i - 1], "direction": direction[start]})
            start = None
        if start is None and d != "none":
            start = i
    if start is not None:
        rows.append({"start": t[start], "end": t[-1], "direction": direction[start]})
    return pd.DataFrame(rows, columns=["start", "end", "direction"])
