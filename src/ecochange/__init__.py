"""
ecochange: how far, and how fast, a community moved away from its baseline.

Stages (each usable on its own):
- ordination: nmds, latent_ordination, compare_ordinations
- baseline: distance_from_ellipse, distance_from_start
- prcurve: principal curve position of each sample
- trends: linear / GLS / smooth trend models, dredge, derivatives
- pipeline: run_pipeline composing all of the above
"""
from .config import AnalysisConfig
from .exceptions import (
    OrderingError, UnsupportedDimensionError, InsufficientDataError, FitFailureError,
)
from .ordination import nmds, latent_ordination, compare_ordinations, OrdinationResult
from .baseline import distance_from_ellipse, distance_from_start, fit_reference_ellipse
from .prcurve import prcurve, orient, PrincipalCurveResult
from .trends import (
    fit_linear_trend, fit_gls, fit_smooth_trend, dredge, best_models,
    derivatives, classify_change, change_periods,
)
from .pipeline import PipelineResult, run_pipeline

__all__ = [
    "AnalysisConfig",
    "OrderingError",
    "UnsupportedDimensionError",
    "InsufficientDataError",
    "FitFailureError",
    "nmds",
    "latent_ordination",
    "compare_ordinations",
    "OrdinationResult",
    "distance_from_ellipse",
    "distance_from_start",
    "fit_reference_ellipse",
    "prcurve",
    "orient",
    "PrincipalCurveResult",
    "fit_linear_trend",
    "fit_gls",
    "fit_smooth_trend",
    "dredge",
    "best_models",
    "derivatives",
    "classify_change",
    "change_periods",
    "PipelineResult",
    "run_pipeline",
]
