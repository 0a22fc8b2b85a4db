from __future__ import annotations # this is for postponed type annotations, PEP563
import numpy as np
import pandas as pd

def _nonnegative_values(df: pd.DataFrame, name: str) -> np.ndarray:
    X = df.to_numpy(dtype=float, copy=True)
    if np.any(X < 0):
        raise ValueError(f"{name} requires nonnegative inputs.")
    return X

def proportions(df: pd.DataFrame) -> pd.DataFrame:
    """
    Row proportions (counts / row total). Empty rows stay all-zero.
    """
    X = _nonnegative_values(df, "proportions")
    row_sums = X.sum(axis=1, keepdims=True)
    row_sums[row_sums == 0] = 1.0  # avoid division by zero
    return pd.DataFrame(X / row_sums, index=df.index, columns=df.columns)

def hellinger_transform(df: pd.DataFrame) -> pd.DataFrame:
    """
    Hellinger transform for nonnegative composition/count-like data.
    Returns a DataFrame with the same index/columns and values in [0, 1].
    """
    X = _nonnegative_values(df, "hellinger_transform")
    row_sums = X.sum(axis=1, keepdims=True)
    row_sums[row_sums == 0] = 1.0  # avoid division by zero
    H = np.sqrt(X / row_sums)
    return pd.DataFrame(H, index=df.index, columns=df.columns)

def chord_transform(df: pd.DataFrame) -> pd.DataFrame:
    """
    Scale each row to unit Euclidean length; Euclidean distance on the result is the chord distance.
    """
    X = _nonnegative_values(df, "chord_transform")
    norms = np.sqrt((X ** 2).sum(axis=1, keepdims=True))
    norms[norms == 0] = 1.0
    return pd.DataFrame(X / norms, index=df.index, columns=df.columns)

def sqrt_transform(df: pd.DataFrame) -> pd.DataFrame:
    X = _nonnegative_values(df, "sqrt_transform")
    return pd.DataFrame(np.sqrt(X), index=df.index, columns=df.columns)

def log1p_transform(df: pd.DataFrame) -> pd.DataFrame:
    X = _nonnegative_values(df, "log1p_transform")
    return pd.DataFrame(np.log1p(X), index=df.index, columns=df.columns)

def log1p_standardize(df: pd.DataFrame) -> pd.DataFrame:
    """
    Log1p + z-score by column: robust for right-skewed abundances.
    """
    X = np.log1p(df.to_numpy(dtype=float, copy=True))
    mu = X.mean(axis=0, keepdims=True)
    sd = X.std(axis=0, ddof=1, keepdims=True)
    sd[sd == 0] = 1.0
    Z = (X - mu) / sd
    return pd.DataFrame(Z, index=df.index, columns=df.columns)

TRANSFORMS = {
    "none": lambda df: df.astype(float),
    "proportions": proportions,
    "hellinger": hellinger_transform,
    "chord": chord_transform,
    "sqrt": sqrt_transform,
    "log1p": log1p_transform,
    "log1p_standardize": log1p_standardize,
}

def apply_transform(df: pd.DataFrame, name: str | None = "none") -> pd.DataFrame:
    """
    Apply a named per-row normalisation / transform to a species matrix.

    Names: 'none', 'proportions', 'hellinger', 'chord', 'sqrt', 'log1p',
    'log1p_standardize'.
    """
    key = "none" if name is None else str(name).lower()
    if key not in TRANSFORMS:
        raise ValueError(f"Unknown transform '{name}'. Available: {sorted(TRANSFORMS)}")
    return TRANSFORMS[key](df)
