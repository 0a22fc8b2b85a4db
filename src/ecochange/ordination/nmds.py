"""
Non-metric multidimensional scaling.

Each start is one run of scikit-learn's non-metric SMACOF (isotonic
disparities, normalised stress-1). The first start is classical scaling
(PCoA); the others are random. A run has converged when
a later start reproduces the best solution (similar stress and a small
Procrustes residual).
"""
from __future__ import annotations

import inspect
import logging
import warnings
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from scipy.spatial import procrustes
from sklearn.exceptions import ConvergenceWarning
from sklearn.manifold import MDS

from ..exceptions import OrderingError
from .distances import dissimilarity_matrix
from .result import OrdinationResult, principal_axes

logger = logging.getLogger(__name__)

# newer scikit-learn renames the non-metric switch and the precomputed flag
if "metric_mds" in inspect.signature(MDS).parameters:
    _NONMETRIC = {"metric_mds": False, "metric": "precomputed"}
else:
    _NONMETRIC = {"metric": False, "dissimilarity": "precomputed"}


def pcoa_configuration(D: np.ndarray, n_axes: int = 2) -> np.ndarray:
    """Classical scaling of a dissimilarity matrix (double-centred squared distances)."""
    n = D.shape[0]
    d2 = D ** 2
    B = -0.5 * (d2 - d2.mean(axis=1, keepdims=True) - d2.mean(axis=0, keepdims=True) + d2.mean())
    eigenvalues, eigenvectors = np.linalg.eigh(B)
    idx = np.argsort(eigenvalues)[::-1][:n_axes]
    pos = eigenvalues[idx].clip(min=0)
    coords = eigenvectors[:, idx] * np.sqrt(pos)[np.newaxis, :]
    # a collapsed axis gives SMACOF nothing to work with
    if np.any(pos <= 1e-12):
        coords = coords + 1e-3 * np.std(D) * np.eye(n, n_axes)
    return coords


def smacof_nonmetric(
    D: np.ndarray,
    init: np.ndarray,
    max_iter: int = 300,
    eps: float = 1e-6,
) -> Tuple[np.ndarray, float, int]:
    """
    One non-metric SMACOF run from `init`.

    Returns (configuration, stress-1, iterations).
    """
    mds = MDS(n_components=init.shape[1], n_init=1, max_iter=max_iter, eps=eps,
              normalized_stress="auto", **_NONMETRIC)
    X = mds.fit_transform(D, init=init)
    logger.debug("smacof stress %.6f after %d iterations", mds.stress_, mds.n_iter_)
    return X, float(mds.stress_), int(mds.n_iter_)


def _procrustes_residuals(reference: np.ndarray, other: np.ndarray) -> Tuple[float, float]:
    """RMSE and largest per-point residual after standardised Procrustes rotation."""
    m1, m2, _ = procrustes(reference, other)
    resid = np.sqrt(np.sum((m1 - m2) ** 2, axis=1))
    return float(np.sqrt(np.mean(resid ** 2))), float(resid.max())


def nmds(
    species: pd.DataFrame,
    metric: str = "bray",
    n_components: int = 2,
    try_min: int = 10,
    try_max: int = 20,
    max_iter: int = 300,
    eps: float = 1e-6,
    stress_tol: float = 1e-4,
    procrustes_tol: float = 0.01,
    max_resid: float = 0.005,
    seed: Optional[int] = 0,
    dissimilarities: Optional[pd.DataFrame] = None,
) -> OrdinationResult:
    """
    NMDS of a (transformed) species matrix with repeated random starts.

    Parameters
    ----------
    species : DataFrame
        samples x taxa, indexed by sample_id.
    metric : str
        Dissimilarity name (see distances.available_metrics()).
    try_min, try_max : int
        Minimum and maximum number of starts.
    stress_tol, procrustes_tol, max_resid : float
        A start repeats the best solution when its stress is within
        stress_tol and the Procrustes RMSE / largest residual are below
        procrustes_tol / max_resid.
    seed : int or None
        Seed for the random starts.
    dissimilarities : DataFrame, optional
        Precomputed n x n matrix; must carry the species index on both axes.

    Returns
    -------
    OrdinationResult with scores 'NMDS1', 'NMDS2' centred and rotated to principal axes.
    """
    if dissimilarities is None:
        dissimilarities = dissimilarity_matrix(species, metric)
    elif not (dissimilarities.index.equals(species.index) and dissimilarities.columns.equals(species.index)):
        raise OrderingError("Dissimilarity matrix is not labelled with the species index")
    D = dissimilarities.to_numpy(dtype=float)
    n = D.shape[0]
    if n < n_components + 2:
        raise ValueError(f"NMDS needs at least {n_components + 2} samples, got {n}")
    if try_max < 1 or try_min > try_max:
        raise ValueError(f"Need 1 <= try_min <= try_max, got {try_min}, {try_max}")

    rng = np.random.default_rng(seed)
    best_X, best_stress = None, np.inf
    converged = False
    tries = 0
    for tries in range(1, try_max + 1):
        if tries == 1:
            init = pcoa_configuration(D, n_components)
        else:
            init = rng.uniform(-1.0, 1.0, size=(n, n_components)) * np.std(D)
        X, stress, n_iter = smacof_nonmetric(D, init, max_iter=max_iter, eps=eps)
        logger.debug("NMDS run %d: stress=%.5f after %d iterations", tries, stress, n_iter)

        if best_X is None:
            best_X, best_stress = X, stress
            continue
        rmse, worst = _procrustes_residuals(best_X, X)
        if abs(stress - best_stress) <= stress_tol and rmse < procrustes_tol and worst < max_resid:
            converged = True
            if stress < best_stress:
                best_X, best_stress = X, stress
        elif stress < best_stress:
            best_X, best_stress = X, stress
            converged = False
        if converged and tries >= try_min:
            break

    if converged:
        logger.info("NMDS converged after %d tries, stress %.4f", tries, best_stress)
    else:
        warnings.warn(
            f"NMDS best solution (stress {best_stress:.4f}) was not repeated in {tries} tries",
            ConvergenceWarning,
        )

    scores = pd.DataFrame(
        principal_axes(best_X),
        index=species.index,
        columns=[f"NMDS{i + 1}" for i in range(n_components)],
    )
    return OrdinationResult(
        scores=scores,
        method="NMDS",
        stress=float(best_stress),
        converged=converged,
        n_tries=tries,
        extra={"metric": metric},
    )
