import numpy as np
import pandas as pd
import pytest

from ecochange.exceptions import FitFailureError
from ecochange.trends import (
    compare_correlation, correlation_matrix, fit_gls, fit_linear_trend, fit_ols, residual_acf,
)
from ecochange.trends.correlation import (
    ar_to_pacf, natural_params, optimise_correlation, pacf_to_ar, unconstrained_params,
)


def _series(n=40, phi=0.6, seed=0):
    rng = np.random.default_rng(seed)
    e = np.zeros(n)
    for i in range(1, n):
        e[i] = phi * e[i - 1] + rng.normal(scale=0.3)
    time = np.arange(n, dtype=float) * 10.0
    group = np.where(time < 200, "early", "late")
    dist = 0.5 + 0.01 * time + e
    return pd.DataFrame({"dist": dist, "year": time, "period": group},
                        index=pd.Index([f"s{i}" for i in range(n)], name="sample_id"))


def test_pacf_map_is_stationary_ar2():
    ar = pacf_to_ar(np.array([0.5, -0.3]))
    # AR(2) from partial autocorrelations (0.5, -0.3): phi2 = -0.3, phi1 = 0.5 * (1 + 0.3)
    assert np.allclose(ar, [0.65, -0.3])
    assert np.all(np.abs(natural_params("ar2", np.array([10.0, -10.0]))) < 2.0)


def test_ar1_correlation_matrix_follows_time_order():
    time = np.array([20.0, 0.0, 10.0])
    R = correlation_matrix("ar1", np.array([np.arctanh(0.5)]), time)
    assert R[1, 2] == pytest.approx(0.5)       # neighbours in time
    assert R[1, 0] == pytest.approx(0.25)      # two steps apart
    assert np.allclose(np.diag(R), 1.0)


def test_correlation_is_block_diagonal_over_groups():
    time = np.array([0.0, 1.0, 2.0, 3.0])
    groups = np.array(["a", "a", "b", "b"])
    R = correlation_matrix("car1", np.array([0.0]), time, groups)
    assert R[0, 1] == pytest.approx(0.5)
    assert R[1, 2] == 0.0


def test_linear_trend_recovers_slope():
    data = _series(phi=0.0)
    res = fit_linear_trend(data, "dist", "year")
    assert res.params["year"] == pytest.approx(0.01, abs=0.003)
    acf = residual_acf(res, data["year"], nlags=5)
    assert acf.index.name == "lag"
    assert acf.iloc[0] == pytest.approx(1.0)


def test_rank_deficient_design_raises():
    data = _series()
    data["year2"] = data["year"] * 2.0
    with pytest.raises(FitFailureError):
        fit_ols("dist ~ year + year2", data)
    with pytest.raises(FitFailureError):
        fit_gls("dist ~ year + year2", data, time="year")


def test_gls_ar1_finds_autocorrelation():
    data = _series(n=60, phi=0.7, seed=2)
    ind = fit_gls("dist ~ year", data, time="year", correlation=None)
    ar1 = fit_gls("dist ~ year", data, time="year", correlation="ar1")
    assert 0.3 < ar1.corr_params[0] < 0.95
    assert ar1.df_modelwc == ind.df_modelwc + 1
    table = compare_correlation(ind, ar1)
    assert list(table.columns) == ["model", "df", "AIC", "BIC", "logLik", "L.Ratio", "p-value"]
    assert table.loc[1, "p-value"] < 0.05
    assert ar1.fitted.index.equals(data.index)


def test_gls_without_correlation_matches_ols():
    data = _series(phi=0.0)
    ols = fit_linear_trend(data, "dist", "year", "period")
    gls = fit_gls("dist ~ year * period", data, time="year", correlation=None, method="ML")
    assert np.allclose(gls.params.to_numpy(), ols.params.to_numpy())
    assert gls.llf == pytest.approx(ols.llf)


def test_gls_grouped_ar_and_car1():
    data = _series(n=40, phi=0.5, seed=4)
    ar2 = fit_gls("dist ~ year * period", data, time="year", correlation="ar2", group="period")
    assert len(ar2.corr_params) == 2
    car = fit_gls("dist ~ year", data, time="year", correlation="car1")
    assert 0.0 < car.corr_params[0] < 1.0


def test_gls_errors():
    data = _series()
    with pytest.raises(ValueError):
        fit_gls("dist ~ year", data, time="year", method="OLS")
    dup = pd.concat([data, data.iloc[[0]].rename(index={"s0": "dup"})])
    with pytest.raises(FitFailureError):
        fit_gls("dist ~ year", dup, time="year", correlation="car1")
    with pytest.raises(ValueError):
        compare_correlation(fit_gls("dist ~ year", data, time="year", correlation="ar1"),
                            fit_gls("dist ~ year", data, time="year", correlation=None))


def test_unconstrained_params_invert_the_mapping():
    u = np.array([0.4, -1.1])
    ar = natural_params("ar2", u)
    assert np.allclose(ar_to_pacf(ar), np.tanh(u))
    assert np.allclose(unconstrained_params("ar2", ar), u)
    assert unconstrained_params("car1", [0.5])[0] == pytest.approx(0.0)
    with pytest.raises(ValueError):
        unconstrained_params("ar1", [1.2])
    with pytest.raises(ValueError):
        unconstrained_params("car1", [0.3, 0.4])


def test_correlation_search_keeps_the_best_point():
    # a narrow interior minimum next to a wide flat shoulder at the upper bound
    def objective(u):
        return min(10.0 * (u[0] - 0.55) ** 2, 1.0)

    u, value = optimise_correlation(objective, "ar1")
    assert u[0] == pytest.approx(0.55, abs=1e-3)
    assert value == pytest.approx(0.0, abs=1e-6)


def test_correlation_search_skips_failed_fits():
    def objective(u):
        if u[0] > 0:
            raise FitFailureError("singular")
        return (u[0] + 1.0) ** 2

    u, _ = optimise_correlation(objective, "car1")
    assert u[0] == pytest.approx(-1.0, abs=1e-3)


def test_gls_reml_estimate_beats_held_values():
    data = _series(n=60, phi=0.7, seed=2)
    ar1 = fit_gls("dist ~ year", data, time="year", correlation="ar1")
    assert ar1.corr_params[0] < 0.99
    for phi in (0.1, 0.5, 0.9, 0.999):
        held = fit_gls("dist ~ year", data, time="year", correlation="ar1", fixed=[phi])
        assert held.corr_params[0] == pytest.approx(phi)
        assert ar1.llf >= held.llf - 1e-6
    assert held.df_modelwc == ar1.df_modelwc - 1
    with pytest.raises(ValueError):
        fit_gls("dist ~ year", data, time="year", correlation=None, fixed=[0.5])
