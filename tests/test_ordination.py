import warnings

import numpy as np
import pandas as pd
import pytest

from ecochange.exceptions import ConvergenceWarning, OrderingError
from ecochange.ordination import (
    compare_ordinations, dissimilarity_matrix, latent_ordination, nmds,
)
from ecochange.ordination.nmds import smacof_nonmetric, pcoa_configuration


def test_bray_curtis_values_and_labels():
    df = pd.DataFrame([[1, 0], [0, 1], [2, 0]], index=["a", "b", "c"], columns=["x", "y"])
    D = dissimilarity_matrix(df, "bray")
    assert list(D.index) == ["a", "b", "c"] and list(D.columns) == ["a", "b", "c"]
    assert D.loc["a", "b"] == pytest.approx(1.0)
    assert D.loc["a", "c"] == pytest.approx(1.0 / 3.0)
    assert np.allclose(np.diag(D), 0.0)


def test_bray_curtis_rejects_empty_samples():
    df = pd.DataFrame([[1, 0], [0, 0]], index=["a", "b"])
    with pytest.raises(ValueError, match="zero total"):
        dissimilarity_matrix(df, "bray")
    with pytest.raises(ValueError):
        dissimilarity_matrix(df, "mahalanobis")


def test_smacof_recovers_euclidean_configuration():
    rng = np.random.default_rng(0)
    X = rng.normal(size=(10, 2))
    D = np.sqrt(((X[:, None, :] - X[None, :, :]) ** 2).sum(axis=2))
    Y, stress, _ = smacof_nonmetric(D, pcoa_configuration(D), max_iter=500)
    assert stress < 0.01


def test_nmds_follows_the_gradient(gradient):
    counts, g = gradient
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        res = nmds(counts, metric="bray", seed=3, try_min=5, try_max=10)
    assert list(res.scores.columns) == ["NMDS1", "NMDS2"]
    assert res.scores.index.equals(counts.index)
    assert res.stress < 0.2
    assert np.allclose(res.scores.mean(), 0.0, atol=1e-8)
    rho = res.scores["NMDS1"].rank().corr(g.rank())
    assert abs(rho) > 0.8


def test_nmds_is_reproducible_with_seed(gradient):
    counts, _ = gradient
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        a = nmds(counts, seed=11, try_min=3, try_max=5)
        b = nmds(counts, seed=11, try_min=3, try_max=5)
    pd.testing.assert_frame_equal(a.scores, b.scores)
    assert a.stress == b.stress


def test_nmds_rejects_unlabelled_dissimilarities(gradient):
    counts, _ = gradient
    D = dissimilarity_matrix(counts).iloc[::-1, ::-1]
    with pytest.raises(OrderingError):
        nmds(counts, dissimilarities=D)


def test_procrustes_of_rotated_copy_is_perfect(gradient):
    counts, _ = gradient
    a = pd.DataFrame(np.column_stack([np.arange(12.0), np.sin(np.arange(12.0))]),
                     index=counts.index, columns=["NMDS1", "NMDS2"])
    theta = 0.7
    rot = np.array([[np.cos(theta), -np.sin(theta)], [np.sin(theta), np.cos(theta)]])
    b = pd.DataFrame(2.0 * a.to_numpy() @ rot + 5.0, index=a.index, columns=["LV1", "LV2"])
    res = compare_ordinations(a, b.iloc[::-1], permutations=99, seed=0)
    assert res.disparity == pytest.approx(0.0, abs=1e-10)
    assert res.correlation == pytest.approx(1.0)
    assert res.p_value == pytest.approx(0.01)
    assert res.residuals.index.equals(a.index)


def test_procrustes_requires_same_samples(gradient):
    counts, _ = gradient
    a = pd.DataFrame(np.ones((12, 2)), index=counts.index)
    b = a.iloc[:-1]
    with pytest.raises(OrderingError):
        compare_ordinations(a, b)


def test_latent_ordination_small_run(gradient):
    counts, _ = gradient
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        res = latent_ordination(counts, family="negative_binomial", n_burnin=200,
                                n_samples=40, thin=2, seed=5)
        again = latent_ordination(counts, family="negative_binomial", n_burnin=200,
                                  n_samples=40, thin=2, seed=5)
    assert res.method == "LVM"
    assert list(res.scores.columns) == ["LV1", "LV2"]
    assert list(res.loadings.columns) == ["beta0", "theta1", "theta2", "phi"]
    # identifiability constraints: lower triangular loadings, positive diagonal
    assert res.loadings.iloc[0]["theta2"] == 0.0
    assert res.loadings.iloc[0]["theta1"] > 0
    assert res.loadings.iloc[1]["theta2"] > 0
    assert res.extra["n_draws"] == 40
    pd.testing.assert_frame_equal(res.scores, again.scores)


def test_latent_ordination_rejects_non_counts(gradient):
    counts, _ = gradient
    with pytest.raises(ValueError):
        latent_ordination(counts / 3.0 + 0.1, family="poisson")
    with pytest.raises(ValueError):
        latent_ordination(counts, family="gaussian")


def test_nmds_warns_when_best_solution_is_not_repeated(gradient):
    counts, _ = gradient
    with pytest.warns(ConvergenceWarning):
        res = nmds(counts, seed=3, try_min=1, try_max=1)
    assert not res.converged
    assert res.n_tries == 1
    assert res.scores.shape == (12, 2)


def test_latent_ordination_poisson_without_row_effect(gradient):
    counts, _ = gradient
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        res = latent_ordination(counts, family="poisson", row_effect="none",
                                n_burnin=100, n_samples=20, thin=1, seed=2)
    assert list(res.loadings.columns) == ["beta0", "theta1", "theta2"]
    assert res.extra["family"] == "poisson"
    assert (res.extra["row_effects"] == 0.0).all()
    assert res.scores.index.equals(counts.index)


def test_latent_ordination_offset_uses_log_totals(gradient):
    counts, _ = gradient
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        res = latent_ordination(counts, family="negative_binomial", row_effect="offset",
                                n_burnin=100, n_samples=20, thin=1, seed=2)
    log_tot = np.log(counts.sum(axis=1))
    assert np.allclose(res.extra["row_effects"], log_tot - log_tot.mean())
    assert res.extra["row_effect"] == "offset"
    assert (res.loadings["phi"] > 0).all()
