"""
End-to-end change analysis of one core.

Stages add blocks to the (block, var) master table of the SampleSet:
  ordination  2-D scores (NMDS or latent-variable model)
  baseline    distance to the reference-period ellipse
  start       dissimilarity to the oldest sample
  prcurve     position along the principal curve
then a distance measure is modelled against time: linear/GLS candidates
ranked by AICc, and a smooth trend whose derivative marks the periods of
significant change.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import joblib
import pandas as pd

from paleodata import SampleSet, add_block, apply_transform, cached, flatten_columns
from paleodata.cleaning import assign_periods
from .baseline import BaselineDistances, StartDistanceResult, distance_from_ellipse, distance_from_start
from .config import AnalysisConfig
from .ordination import OrdinationResult, latent_ordination, nmds
from .prcurve import PrincipalCurveResult, orient, prcurve
from .trends import SmoothTrend, change_periods, derivatives, dredge, fit_smooth_trend

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    master: pd.DataFrame          # one row per sample, columns '<block>__<var>'
    polygon: pd.DataFrame         # reference ellipse vertices
    centroid: pd.DataFrame        # one-row reference centroid
    models: pd.DataFrame          # AICc-ranked trend models
    derivatives: pd.DataFrame     # derivative of the smooth trend with simultaneous band
    change_periods: pd.DataFrame  # start, end, direction
    ordination: OrdinationResult
    baseline: BaselineDistances
    start: StartDistanceResult
    prcurve: PrincipalCurveResult
    smooth: SmoothTrend
    config: AnalysisConfig


def _cache_key(stage: str, data: pd.DataFrame, *args) -> str:
    return f"{stage}_{joblib.hash((data, args))}"


def run_ordination(samples: SampleSet, config: AnalysisConfig) -> OrdinationResult:
    if config.ordination == "nmds":
        species = apply_transform(samples.species, config.ordination_transform)
        return nmds(species, metric=config.metric, seed=config.seed)
    if config.ordination == "latent":
        return latent_ordination(samples.species, family=config.latent_family,
                                 row_effect=config.latent_row_effect, seed=config.seed)
    raise ValueError(f"Unknown ordination '{config.ordination}'. Available: ('nmds', 'latent')")


def trend_frame(master: pd.DataFrame, config: AnalysisConfig) -> pd.DataFrame:
    """Response, time and group columns for the trend models, from the flattened master."""
    measure = config.trend_measure
    if measure not in master.columns:
        raise KeyError(f"Trend measure '{measure}' not found. Available: {list(master.columns)}")
    return pd.DataFrame({
        measure: master[measure].astype(float),
        config.time_col: master[f"meta__{config.time_col}"].astype(float),
        config.group_col: master[f"meta__{config.group_col}"].astype(str),
    }, index=master.index)


def run_pipeline(samples: SampleSet, config: Optional[AnalysisConfig] = None) -> PipelineResult:
    """Run every stage on one core. The config seed is passed to each stochastic stage."""
    config = config or AnalysisConfig()
    if config.group_col not in samples.meta.columns:
        meta = samples.meta.assign(**{config.group_col: assign_periods(
            samples.meta[config.time_col], config.period_boundaries, config.period_labels)})
        samples = SampleSet(meta=meta, species=samples.species)
    meta = samples.meta
    master = samples.master()
    logger.info("Pipeline: %d samples x %d taxa, %s ordination, seed %d",
                len(meta), len(samples.taxa), config.ordination, config.seed)

    # ---- ordination (cached: the slow stage) ----
    if config.cache_dir is not None:
        key = _cache_key("ordination", samples.species, config.ordination, config.ordination_transform,
                         config.metric, config.latent_family, config.latent_row_effect, config.seed)
        ordination = cached(key, lambda: run_ordination(samples, config), cache_dir=config.cache_dir)
    else:
        ordination = run_ordination(samples, config)
    master = add_block(master, ordination.scores, "ordination")

    # ---- distances ----
    baseline = distance_from_ellipse(
        ordination.scores, meta[config.group_col], config.reference_period,
        level=config.ellipse_level, resolution=config.ellipse_resolution,
    )
    master = add_block(master, baseline.distances, "baseline")

    start = distance_from_start(
        apply_transform(samples.species, config.ordination_transform), meta,
        order_by=config.time_col, metric=config.metric,
    )
    master = add_block(master, start.to_frame(), "start")

    curve = orient(prcurve(apply_transform(samples.species, config.prcurve_transform)), meta, by=config.time_col)
    master = add_block(master, curve.scores, "prcurve")

    flat = flatten_columns(master)

    # ---- trends ----
    data = trend_frame(flat, config)
    measure, time, group = config.trend_measure, config.time_col, config.group_col
    models = dredge(data, f"{measure} ~ {time} * {group}", time=time,
                    correlation=config.trend_correlation, margin=config.aicc_margin)

    smooth = fit_smooth_trend(data, measure, time, n_basis=config.n_basis,
                              correlation=config.smooth_correlation)
    deriv = derivatives(smooth, n=config.deriv_grid, level=config.change_level,
                        n_sim=config.deriv_simulations, seed=config.seed)
    periods = change_periods(deriv, time)
    logger.info("Pipeline done: %d equivalent trend models, %d change periods",
                int(models["equivalent"].sum()), len(periods))

    return PipelineResult(
        master=flat,
        polygon=baseline.ellipse.polygon,
        centroid=baseline.ellipse.centroid_record(),
        models=models,
        derivatives=deriv,
        change_periods=periods,
        ordination=ordination,
        baseline=baseline,
        start=start,
        prcurve=curve,
        smooth=smooth,
        config=config,
    )
