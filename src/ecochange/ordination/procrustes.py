"""Agreement between two ordinations of the same samples (PROTEST-style)."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from scipy.spatial import procrustes

from ..exceptions import OrderingError


@dataclass
class ProcrustesResult:
    disparity: float       # sum of squared residuals after standardised rotation
    correlation: float     # sqrt(1 - disparity)
    p_value: float
    n_perm: int
    residuals: pd.Series   # per-sample residual length


def compare_ordinations(a: pd.DataFrame, b: pd.DataFrame,
                        permutations: int = 999,
                        seed: Optional[int] = 0) -> ProcrustesResult:
    """
    Rotate b onto a and test the fit by permuting the rows of b.

    Both frames must be indexed by the same sample ids; b is reindexed to a.
    """
    if set(a.index) != set(b.index) or len(a.index) != len(b.index):
        raise OrderingError("Ordinations do not cover the same samples")
    b = b.reindex(a.index)
    A = a.to_numpy(dtype=float)
    B = b.to_numpy(dtype=float)
    m1, m2, disparity = procrustes(A, B)

    rng = np.random.default_rng(seed)
    count_le = 1  # include observed
    for _ in range(permutations):
        _, _, d_perm = procrustes(A, B[rng.permutation(B.shape[0])])
        if d_perm <= disparity:
            count_le += 1
    resid = np.sqrt(np.sum((m1 - m2) ** 2, axis=1))
    return ProcrustesResult(
        disparity=float(disparity),
        correlation=float(np.sqrt(max(0.0, 1.0 - disparity))),
        p_value=count_le / (permutations + 1),
        n_perm=int(permutations),
        residuals=pd.Series(resid, index=a.index, name="procrustes_residual"),
    )
