"""Point-to-polyline projection shared by the ellipse and principal-curve code."""
from __future__ import annotations

from typing import NamedTuple

import numpy as np


class Projection(NamedTuple):
    distance: np.ndarray   # (m,) distance to the nearest segment
    segment: np.ndarray    # (m,) index of that segment
    t: np.ndarray          # (m,) position along the segment in [0, 1]
    point: np.ndarray      # (m, d) nearest point on the polyline


def project_to_polyline(points: np.ndarray, vertices: np.ndarray, closed: bool = False) -> Projection:
    """
    Nearest point on a polyline for every point, in any dimension.

    closed=True adds the segment from the last vertex back to the first.
    """
    P = np.atleast_2d(np.asarray(points, dtype=float))
    V = np.atleast_2d(np.asarray(vertices, dtype=float))
    if P.shape[1] != V.shape[1]:
        raise ValueError(f"Dimension mismatch: points {P.shape[1]}, vertices {V.shape[1]}")
    if closed:
        V = np.vstack([V, V[:1]])
    if V.shape[0] < 2:
        raise ValueError("A polyline needs at least 2 vertices")
    A = V[:-1]
    AB = V[1:] - A
    seg_len2 = np.sum(AB ** 2, axis=1)

    AP = P[:, None, :] - A[None, :, :]                    # (m, s, d)
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.where(seg_len2 > 0, np.einsum("msd,sd->ms", AP, AB) / seg_len2, 0.0)
    t = np.clip(t, 0.0, 1.0)
    proj = A[None, :, :] + t[:, :, None] * AB[None, :, :]
    d2 = np.sum((P[:, None, :] - proj) ** 2, axis=2)

    best = np.argmin(d2, axis=1)
    rows = np.arange(P.shape[0])
    return Projection(
        distance=np.sqrt(d2[rows, best]),
        segment=best,
        t=t[rows, best],
        point=proj[rows, best],
    )


def polyline_arclength(vertices: np.ndarray) -> np.ndarray:
    """Cumulative arc length at each vertex, starting at 0."""
    V = np.asarray(vertices, dtype=float)
    seg = np.sqrt(np.sum(np.diff(V, axis=0) ** 2, axis=1))
    return np.concatenate([[0.0], np.cumsum(seg)])
