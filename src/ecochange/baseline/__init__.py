"""
Distances from an ecological baseline.

- fit_reference_ellipse / distance_from_ellipse: reference-period ellipse in ordination space
- distance_from_start: dissimilarity of each sample to the oldest sample
"""
from .geometry import project_to_polyline, polyline_arclength
from .ellipse import (
    ReferenceEllipse, BaselineDistances,
    fit_reference_ellipse, distances_to_ellipse, distance_from_ellipse,
)
from .start import StartDistanceResult, distance_from_start

__all__ = [
    "project_to_polyline",
    "polyline_arclength",
    "ReferenceEllipse",
    "BaselineDistances",
    "fit_reference_ellipse",
    "distances_to_ellipse",
    "distance_from_ellipse",
    "StartDistanceResult",
    "distance_from_start",
]
