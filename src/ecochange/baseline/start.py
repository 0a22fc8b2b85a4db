"""Dissimilarity of every sample to a fixed reference (by default the oldest) sample."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Hashable, Optional

import pandas as pd

from paleodata.dataframe_ops import assert_same_index
from ..ordination.distances import dissimilarity_matrix

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StartDistanceResult:
    distances: pd.Series       # indexed by sample_id, name 'dist_to_start'
    reference_id: Hashable
    reference_value: float     # order_by value of the reference sample
    order_by: str
    metric: str

    def to_frame(self) -> pd.DataFrame:
        return self.distances.to_frame()


def distance_from_start(
    species: pd.DataFrame,
    meta: pd.DataFrame,
    order_by: str = "year",
    metric: str = "bray",
    reference: Optional[Hashable] = None,
    ascending: bool = True,
) -> StartDistanceResult:
    """
    Distance of every sample to the reference sample under `metric`.

    The reference is `reference` when given, else the sample with the
    smallest `order_by` value (largest when ascending=False). Ties are
    broken by the first sample in index order. The result exposes the
    chosen reference so callers can check it.
    """
    assert_same_index(species, meta, what="species/meta")
    if order_by not in meta.columns:
        raise KeyError(f"Ordering column '{order_by}' not found. Available: {list(meta.columns)}")
    if reference is None:
        values = meta[order_by].astype(float)
        reference = values.idxmin() if ascending else values.idxmax()
    elif reference not in species.index:
        raise KeyError(f"Reference sample '{reference}' not in the species index")

    D = dissimilarity_matrix(species, metric)
    dist = D.loc[:, reference].copy()
    dist.loc[reference] = 0.0
    dist.name = "dist_to_start"
    ref_value = float(meta.loc[reference, order_by])
    logger.info("Distance from start: reference sample %s (%s=%g), metric %s",
                reference, order_by, ref_value, metric)
    return StartDistanceResult(
        distances=dist,
        reference_id=reference,
        reference_value=ref_value,
        order_by=order_by,
        metric=metric,
    )
