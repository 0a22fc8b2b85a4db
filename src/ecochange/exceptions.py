"""
Error types raised by the analysis stages.

Convergence problems are not errors: iterative fits return their best
solution with ``converged=False`` and emit
``sklearn.exceptions.ConvergenceWarning``.
"""
from paleodata.dataframe_ops import OrderingError
from sklearn.exceptions import ConvergenceWarning

__all__ = [
    "OrderingError",
    "UnsupportedDimensionError",
    "InsufficientDataError",
    "FitFailureError",
    "ConvergenceWarning",
]


class UnsupportedDimensionError(ValueError):
    """Raised for embeddings that are not 2-dimensional."""


class InsufficientDataError(ValueError):
    """Raised when a reference group is too small or degenerate to fit."""


class FitFailureError(RuntimeError):
    """Raised when a regression or smooth fit is numerically singular."""
