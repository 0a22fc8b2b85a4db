from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

from paleodata.config import (
    PERIOD_BOUNDARIES, PERIOD_LABELS, YEAR_COL, PERIOD_COL,
)

# Baseline ellipse
ELLIPSE_LEVEL = 0.95
ELLIPSE_RESOLUTION = 100

# Dissimilarities and ordination
DISTANCE_METRIC = "bray"
ORDINATION_TRANSFORM = "none"
PRCURVE_TRANSFORM = "hellinger"
SEED = 42

# Smooth trends
N_BASIS = 10
DERIV_GRID = 200
DERIV_SIMULATIONS = 10000
CHANGE_LEVEL = 0.95

# Model selection: models within this many AICc units of the best are equivalent
AICC_MARGIN = 2.0


@dataclass(frozen=True)
class AnalysisConfig:
    """All knobs of one pipeline run. The seed is passed to every stochastic stage."""
    period_boundaries: Tuple[float, float] = PERIOD_BOUNDARIES
    period_labels: Tuple[str, str, str] = PERIOD_LABELS
    reference_period: str = PERIOD_LABELS[0]
    time_col: str = YEAR_COL
    group_col: str = PERIOD_COL
    ellipse_level: float = ELLIPSE_LEVEL
    ellipse_resolution: int = ELLIPSE_RESOLUTION
    metric: str = DISTANCE_METRIC
    ordination: str = "nmds"             # 'nmds' or 'latent'
    ordination_transform: str = ORDINATION_TRANSFORM
    latent_family: str = "negative_binomial"
    latent_row_effect: str = "fixed"
    prcurve_transform: str = PRCURVE_TRANSFORM
    n_basis: int = N_BASIS
    smooth_correlation: Optional[str] = None   # None or 'car1'
    trend_measure: str = "baseline__dist_to_centroid"
    change_level: float = CHANGE_LEVEL
    deriv_grid: int = DERIV_GRID
    deriv_simulations: int = DERIV_SIMULATIONS
    aicc_margin: float = AICC_MARGIN
    trend_correlation: Optional[str] = None    # residual correlation of the ranked models
    seed: int = SEED
    cache_dir: Optional[str] = None      # None disables caching
