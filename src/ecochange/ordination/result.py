from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np
import pandas as pd


@dataclass
class OrdinationResult:
    """
    Two-dimensional ordination of the samples.

    Attributes:
        scores (pd.DataFrame): sample coordinates indexed by sample_id
        method (str): 'NMDS' or 'LVM'
        stress (float or None): Kruskal stress-1 of the NMDS solution
        converged (bool): False when the best solution was never repeated
        n_tries (int): random starts used
        loadings (pd.DataFrame or None): per-taxon coefficients (model-based only)
        extra (dict): method specific diagnostics
    """
    scores: pd.DataFrame
    method: str
    stress: Optional[float] = None
    converged: bool = True
    n_tries: int = 1
    loadings: Optional[pd.DataFrame] = None
    extra: Dict = field(default_factory=dict)

    @property
    def n_samples(self) -> int:
        return self.scores.shape[0]

    def __repr__(self):
        stress = f", stress={self.stress:.4f}" if self.stress is not None else ""
        return (
            f"OrdinationResult(method='{self.method}', samples={self.n_samples}"
            f"{stress}, converged={self.converged}, tries={self.n_tries})"
        )


def principal_axes(X: np.ndarray) -> np.ndarray:
    """Centre a configuration and rotate it onto its principal axes with a fixed sign per axis."""
    Xc = X - X.mean(axis=0, keepdims=True)
    _, _, vt = np.linalg.svd(Xc, full_matrices=False)
    R = Xc @ vt.T
    for j in range(R.shape[1]):
        if R[np.argmax(np.abs(R[:, j])), j] < 0:
            R[:, j] = -R[:, j]
    return R
