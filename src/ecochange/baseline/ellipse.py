"""
Baseline (reference-period) confidence ellipse in a 2-D ordination.

The ellipse is the chi-squared (2 df) contour of the reference group's
mean and covariance. Every sample gets its Euclidean distance to the
centroid and to the ellipse boundary. A sample counts as inside when its
squared Mahalanobis distance is at most the chi-squared quantile (closed
ellipse), and inside samples have a boundary distance of exactly 0.
Outside samples are measured to the boundary polygon.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Hashable

import numpy as np
import pandas as pd
from scipy.stats import chi2

from paleodata.dataframe_ops import assert_same_index
from ..exceptions import InsufficientDataError, UnsupportedDimensionError
from .geometry import project_to_polyline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferenceEllipse:
    centroid: np.ndarray      # (2,)
    covariance: np.ndarray    # (2, 2)
    level: float
    radius: float             # sqrt(chi2.ppf(level, 2))
    polygon: pd.DataFrame     # vertex, x, y (ordered, not repeated at the end)
    reference: Hashable
    n_reference: int
    axes: tuple

    def mahalanobis2(self, points: np.ndarray) -> np.ndarray:
        diff = np.atleast_2d(points) - self.centroid
        return np.einsum("ij,jk,ik->i", diff, np.linalg.inv(self.covariance), diff)

    def contains(self, points: np.ndarray) -> np.ndarray:
        """Closed-ellipse membership: boundary points count as inside."""
        return self.mahalanobis2(points) <= self.radius ** 2 * (1.0 + 1e-12)

    def centroid_record(self) -> pd.DataFrame:
        rec = {ax: [float(v)] for ax, v in zip(self.axes, self.centroid)}
        rec.update({"reference": [self.reference], "level": [self.level], "n_reference": [self.n_reference]})
        return pd.DataFrame(rec)


@dataclass(frozen=True)
class BaselineDistances:
    ellipse: ReferenceEllipse
    distances: pd.DataFrame   # dist_to_centroid, dist_to_boundary, inside; indexed by sample_id


def _check_2d(scores: pd.DataFrame) -> None:
    if scores.ndim != 2 or scores.shape[1] != 2:
        raise UnsupportedDimensionError(
            f"Ellipse geometry is only defined for 2-D embeddings, got {scores.shape[1]} axes"
        )


def fit_reference_ellipse(
    scores: pd.DataFrame,
    groups: pd.Series,
    reference: Hashable,
    level: float = 0.95,
    resolution: int = 100,
) -> ReferenceEllipse:
    """
    Fit the confidence ellipse of the reference group.

    Args:
        scores: samples x 2 embedding indexed by sample_id
        groups: group label per sample, same index and order as scores
        reference: label of the reference group
        level: confidence level in (0, 1)
        resolution: number of polygon vertices
    """
    _check_2d(scores)
    assert_same_index(scores, groups, what="scores/groups")
    if not 0 < level < 1:
        raise ValueError(f"level must be in (0, 1), got {level}")
    if resolution < 3:
        raise ValueError(f"resolution must be >= 3, got {resolution}")

    ref = scores.loc[(groups == reference).to_numpy()].to_numpy(dtype=float)
    if ref.shape[0] < 3:
        raise InsufficientDataError(
            f"Reference group '{reference}' has {ref.shape[0]} samples; at least 3 are needed"
        )
    centroid = ref.mean(axis=0)
    cov = np.cov(ref, rowvar=False, ddof=1)
    eigvals, eigvecs = np.linalg.eigh(cov)
    if not np.all(np.isfinite(cov)) or eigvals.min() <= 1e-12 * max(eigvals.max(), 1e-300):
        raise InsufficientDataError(
            f"Reference group '{reference}' is degenerate (collinear or identical points)"
        )
    radius = float(np.sqrt(chi2.ppf(level, df=2)))

    angles = np.linspace(0.0, 2.0 * np.pi, resolution, endpoint=False)
    circle = np.column_stack([np.cos(angles), np.sin(angles)])
    pts = centroid + radius * circle @ (eigvecs * np.sqrt(eigvals)).T
    axes = tuple(scores.columns)
    polygon = pd.DataFrame({"vertex": np.arange(resolution), axes[0]: pts[:, 0], axes[1]: pts[:, 1]})

    logger.info("Reference ellipse for '%s': %d samples, level %.2f", reference, ref.shape[0], level)
    return ReferenceEllipse(
        centroid=centroid,
        covariance=cov,
        level=float(level),
        radius=radius,
        polygon=polygon,
        reference=reference,
        n_reference=int(ref.shape[0]),
        axes=axes,
    )


def distances_to_ellipse(ellipse: ReferenceEllipse, scores: pd.DataFrame) -> pd.DataFrame:
    """Distance of every sample to the ellipse centroid and boundary."""
    _check_2d(scores)
    P = scores.to_numpy(dtype=float)
    to_centroid = np.sqrt(np.sum((P - ellipse.centroid) ** 2, axis=1))
    inside = ellipse.contains(P)
    vertices = ellipse.polygon[list(ellipse.axes)].to_numpy()
    to_boundary = project_to_polyline(P, vertices, closed=True).distance
    to_boundary = np.where(inside, 0.0, to_boundary)
    return pd.DataFrame(
        {"dist_to_centroid": to_centroid, "dist_to_boundary": to_boundary, "inside": inside},
        index=scores.index,
    )


def distance_from_ellipse(
    scores: pd.DataFrame,
    groups: pd.Series,
    reference: Hashable,
    level: float = 0.95,
    resolution: int = 100,
) -> BaselineDistances:
    """Fit the reference ellipse and measure every sample against it."""
    ellipse = fit_reference_ellipse(scores, groups, reference, level=level, resolution=resolution)
    return BaselineDistances(ellipse=ellipse, distances=distances_to_ellipse(ellipse, scores))
