from .correlation import CORRELATIONS, correlation_matrix
from .derivatives import change_periods, classify_change, derivatives
from .gls import GLSResult, compare_correlation, fit_gls
from .linear import fit_linear_trend, fit_ols, residual_acf, trend_formula
from .selection import best_models, candidate_terms, dredge, expand_terms
from .smooth import SmoothTrend, fit_smooth_trend

__all__ = [
    "CORRELATIONS", "correlation_matrix",
    "change_periods", "classify_change", "derivatives",
    "GLSResult", "compare_correlation", "fit_gls",
    "fit_linear_trend", "fit_ols", "residual_acf", "trend_formula",
    "best_models", "candidate_terms", "dredge", "expand_terms",
    "SmoothTrend", "fit_smooth_trend",
]
