import warnings

import numpy as np
import pandas as pd
import pytest

from ecochange import AnalysisConfig, run_pipeline
from paleodata import SampleSet


def _config(**kw):
    base = dict(
        period_boundaries=(300.0, 600.0),
        period_labels=("reference", "middle", "late"),
        reference_period="reference",
        trend_measure="start__dist_to_start",
        n_basis=6,
        deriv_grid=50,
        deriv_simulations=500,
        seed=42,
    )
    base.update(kw)
    return AnalysisConfig(**base)


@pytest.fixture
def result(core):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return run_pipeline(core, _config())


def test_master_has_one_row_per_sample(result, core):
    m = result.master
    assert m.index.equals(core.meta.index)
    for col in ("meta__year", "taxa__taxon_0", "ordination__NMDS1", "ordination__NMDS2",
                "baseline__dist_to_centroid", "baseline__dist_to_boundary", "baseline__inside",
                "start__dist_to_start", "prcurve__PrC"):
        assert col in m.columns


def test_reference_samples_sit_at_the_baseline(result, core):
    m = result.master
    ref = core.meta.index[core.meta["period"] == "reference"]
    # three points always lie inside their own 95% ellipse
    assert m.loc[ref, "baseline__inside"].all()
    assert (m.loc[ref, "baseline__dist_to_boundary"] == 0.0).all()
    assert result.start.reference_id == "C0"
    assert m.loc["C0", "start__dist_to_start"] == 0.0
    assert np.allclose(result.centroid[["NMDS1", "NMDS2"]].to_numpy()[0],
                       m.loc[ref, ["ordination__NMDS1", "ordination__NMDS2"]].mean().to_numpy())


def test_diverging_samples_move_away(result, core):
    m = result.master
    later = core.meta.index[core.meta["year"] >= 300]
    d = m.loc[later, "start__dist_to_start"]
    assert d.rank().corr(core.meta.loc[later, "year"].rank()) > 0.75
    late = core.meta.loc[later, "period"] == "late"
    assert d[late].mean() > d[~late].mean()
    assert m.loc["C9", "baseline__dist_to_centroid"] > m.loc["C3", "baseline__dist_to_centroid"]
    assert not m.loc["C9", "baseline__inside"]
    assert m.loc["C9", "prcurve__PrC"] > m.loc["C0", "prcurve__PrC"]


def test_tables(result):
    assert len(result.polygon) == 100
    assert result.centroid["reference"].iloc[0] == "reference"
    assert result.models["delta"].iloc[0] == 0.0
    assert result.models["equivalent"].any()
    assert len(result.derivatives) == 50
    assert list(result.change_periods.columns) == ["start", "end", "direction"]
    # distance from the start rises over the core
    assert (result.derivatives["derivative"] > 0).mean() > 0.5


def test_rerun_is_identical(core, result):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        again = run_pipeline(core, _config())
    pd.testing.assert_frame_equal(again.master, result.master)
    pd.testing.assert_frame_equal(again.models, result.models)
    pd.testing.assert_frame_equal(again.derivatives, result.derivatives)
    pd.testing.assert_frame_equal(again.change_periods, result.change_periods)


def test_periods_assigned_when_missing(core):
    bare = SampleSet(meta=core.meta.drop(columns="period"), species=core.species)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        res = run_pipeline(bare, _config())
    assert res.baseline.ellipse.n_reference == 3


def test_ordination_is_cached(core, tmp_path):
    cfg = _config(cache_dir=str(tmp_path))
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        first = run_pipeline(core, cfg)
        assert len(list(tmp_path.glob("ordination_*.joblib"))) == 1
        second = run_pipeline(core, cfg)
    pd.testing.assert_frame_equal(first.ordination.scores, second.ordination.scores)


def test_unknown_ordination(core):
    with pytest.raises(ValueError):
        run_pipeline(core, _config(ordination="pca"))


def test_trend_models_with_residual_correlation(core):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        res = run_pipeline(core, _config(trend_correlation="ar1"))
    fitted = res.models.loc[res.models["error"].isna()]
    assert len(fitted) >= 1
    # intercept, variance and the AR(1) coefficient for the null model
    null = res.models.loc[res.models["terms"] == "1"].iloc[0]
    assert null["df"] == 3
