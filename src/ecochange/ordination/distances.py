"""Named ecological dissimilarities on species matrices."""
from __future__ import annotations

import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist, squareform

from paleodata.transform import chord_transform, hellinger_transform

# name -> (row transform applied first, scipy metric)
_METRICS = {
    "bray": (None, "braycurtis"),
    "braycurtis": (None, "braycurtis"),
    "euclidean": (None, "euclidean"),
    "manhattan": (None, "cityblock"),
    "canberra": (None, "canberra"),
    "jaccard": (None, "jaccard"),
    "chord": (chord_transform, "euclidean"),
    "hellinger": (hellinger_transform, "euclidean"),
}


def available_metrics() -> list[str]:
    return sorted(_METRICS)


def dissimilarity_matrix(species: pd.DataFrame, metric: str = "bray") -> pd.DataFrame:
    """
    Full n x n dissimilarity matrix, labelled by the species index.

    'jaccard' works on presence/absence. Rows that are all zero give NaN
    under Bray-Curtis, so they are rejected up front.
    """
    key = str(metric).lower()
    if key not in _METRICS:
        raise ValueError(f"Unknown metric '{metric}'. Available: {available_metrics()}")
    pre, scipy_metric = _METRICS[key]
    data = pre(species) if pre is not None else species
    X = data.to_numpy(dtype=float)
    if key == "jaccard":
        X = X > 0
    if scipy_metric == "braycurtis" and np.any(X.sum(axis=1) == 0):
        empty = list(species.index[X.sum(axis=1) == 0][:10])
        raise ValueError(f"Samples with zero total count cannot be compared with '{metric}': {empty}")
    D = squareform(pdist(X, metric=scipy_metric))
    return pd.DataFrame(D, index=species.index, columns=species.index)
