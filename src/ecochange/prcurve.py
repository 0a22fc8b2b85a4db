"""
Principal curve of a species matrix (Hastie and Stuetzle).

Start from the first principal component line, then alternate:
  1. project every sample onto the current curve and take its arc length
  2. smooth each taxon against arc length with a penalised spline
until the total squared distance of the samples to the curve stops
decreasing. The arc length of each sample (PrC) is a one-dimensional
summary of compositional change and can be modelled against time like
any other distance measure.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, replace
from typing import Optional

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.exceptions import ConvergenceWarning

from paleodata.dataframe_ops import assert_same_index
from .baseline.geometry import polyline_arclength, project_to_polyline
from .exceptions import InsufficientDataError
from .trends.smooth import bspline_basis, smooth_with_df

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrincipalCurveResult:
    """
    Attributes:
        scores (pd.Series): arc length of each sample along the curve ('PrC')
        fitted (pd.DataFrame): projection of each sample onto the curve
        curve (pd.DataFrame): curve vertices in order, with their arc length in 'PrC'
        dist (float): total squared distance of the samples to the curve
        iterations (int): iteration that produced the returned curve (0 is the PCA line)
        converged (bool): relative change in dist reached tol
        var_explained (float): 1 - dist / total sum of squares
    """
    scores: pd.Series
    fitted: pd.DataFrame
    curve: pd.DataFrame
    dist: float
    iterations: int
    converged: bool
    var_explained: float

    @property
    def length(self) -> float:
        return float(self.curve["PrC"].iloc[-1])


def _project(P: np.ndarray, vertices: np.ndarray):
    proj = project_to_polyline(P, vertices)
    arc = polyline_arclength(vertices)
    seg_len = np.diff(arc)
    lam = arc[proj.segment] + proj.t * seg_len[proj.segment]
    return lam, proj.point, float(np.sum(proj.distance ** 2)), arc


def prcurve(
    species: pd.DataFrame,
    df: Optional[float] = 5.0,
    n_basis: int = 10,
    tol: float = 1e-3,
    max_iter: int = 10,
    n_grid: int = 100,
) -> PrincipalCurveResult:
    """
    Fit a principal curve to a (transformed) samples x taxa matrix.

    Args:
        species: samples x taxa, indexed by sample_id
        df: degrees of freedom of each taxon's smoother; None selects the
            smoothing by REML separately for every taxon
        n_basis: spline basis dimension
        tol: stop when |dist_old - dist| / dist_old <= tol
        max_iter: maximum smoothing iterations
        n_grid: vertices used to represent the curve
    """
    P = species.to_numpy(dtype=float)
    n, p = P.shape
    if n < 4:
        raise InsufficientDataError(f"A principal curve needs at least 4 samples, got {n}")
    if max_iter < 1 or tol <= 0:
        raise ValueError("max_iter must be >= 1 and tol > 0")

    total_ss = float(np.sum((P - P.mean(axis=0)) ** 2))
    if total_ss == 0:
        raise InsufficientDataError("All samples are identical")

    # initial curve: the first principal component line over the range of the data
    pca = PCA(n_components=1).fit(P)
    pc1 = pca.transform(P)[:, 0]
    grid = np.linspace(pc1.min(), pc1.max(), n_grid)
    vertices = pca.mean_ + np.outer(grid, pca.components_[0])
    lam, points, dist, arc = _project(P, vertices)
    logger.debug("prcurve start: dist=%.6g", dist)

    best = (lam, points, dist, vertices, arc)
    best_iteration = 0
    converged = False
    iteration = 0
    for iteration in range(1, max_iter + 1):
        if len(np.unique(np.round(lam, 12))) < 4:
            raise InsufficientDataError("Samples project onto fewer than 4 distinct curve positions")
        s_grid = np.linspace(lam.min(), lam.max(), n_grid)
        new_vertices = np.empty((n_grid, p))
        for j in range(p):
            knots, coef = smooth_with_df(lam, P[:, j], df=df, n_basis=n_basis)
            new_vertices[:, j] = bspline_basis(s_grid, knots) @ coef
        new_lam, new_points, new_dist, new_arc = _project(P, new_vertices)
        change = abs(dist - new_dist) / max(dist, np.finfo(float).tiny)
        logger.debug("prcurve iteration %d: dist=%.6g, change=%.3g", iteration, new_dist, change)
        lam, points, dist, vertices, arc = new_lam, new_points, new_dist, new_vertices, new_arc
        if dist < best[2]:
            best = (lam, points, dist, vertices, arc)
            best_iteration = iteration
        if change <= tol:
            converged = True
            break

    if converged:
        best = (lam, points, dist, vertices, arc)
        best_iteration = iteration
        logger.info("Principal curve converged in %d iterations, %.1f%% variance explained",
                    iteration, 100.0 * (1.0 - dist / total_ss))
    else:
        warnings.warn(
            f"Principal curve did not converge in {max_iter} iterations; returning the best curve",
            ConvergenceWarning,
        )
    lam, points, dist, vertices, arc = best

    curve = pd.DataFrame(vertices, columns=species.columns)
    curve.insert(0, "PrC", arc)
    return PrincipalCurveResult(
        scores=pd.Series(lam, index=species.index, name="PrC"),
        fitted=pd.DataFrame(points, index=species.index, columns=species.columns),
        curve=curve,
        dist=float(dist),
        iterations=best_iteration,
        converged=converged,
        var_explained=float(1.0 - dist / total_ss),
    )


def orient(result: PrincipalCurveResult, meta: pd.DataFrame, by: str = "year") -> PrincipalCurveResult:
    """Reverse the curve when needed so the oldest sample (smallest `by`) lies nearer its start than the youngest."""
    assert_same_index(result.scores, meta, what="prcurve/meta")
    if by not in meta.columns:
        raise KeyError(f"Column '{by}' not found. Available: {list(meta.columns)}")
    order = meta[by].astype(float)
    oldest, youngest = order.idxmin(), order.idxmax()
    if result.scores[oldest] <= result.scores[youngest]:
        return result
    length = result.length
    curve = result.curve.iloc[::-1].reset_index(drop=True)
    curve["PrC"] = length - curve["PrC"]
    return replace(result, scores=length - result.scores, curve=curve)
