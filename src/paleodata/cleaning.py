from __future__ import annotations
from typing import Iterable, Sequence
import pandas as pd
import numpy as np

def normalize_columns(df: pd.DataFrame, lower: bool = False) -> pd.DataFrame:
    """
    Tidy raw column headers: trim, join words with '_', drop odd characters.

    Taxon names keep their case unless lower=True, so 'Cyclotella comta'
    becomes 'Cyclotella_comta'.
    """
    df = df.copy()
    cols = (
        df.columns
        .astype(str)
        .str.strip()
        .str.replace(r"\s+", "_", regex=True)
        .str.replace(r"[^0-9A-Za-z_.\-]", "", regex=True)
    )
    df.columns = cols.str.lower() if lower else cols
    return df

def lower_meta_columns(df: pd.DataFrame, meta_cols: Iterable[str]) -> pd.DataFrame:
    """Lowercase only the metadata column names (e.g. 'Year' -> 'year')."""
    wanted = {c.lower() for c in meta_cols}
    mapping = {c: c.lower() for c in df.columns if str(c).lower() in wanted}
    return df.rename(columns=mapping)

def cast_types(df: pd.DataFrame, dtypes: dict[str, str]) -> pd.DataFrame:
    """
    Cast metadata columns to the given dtypes; absent columns are skipped.

    Numeric targets go through pd.to_numeric, so unparseable years or
    depths become NaN and are caught by validation later.
    """
    out = df.copy()
    for col, dtype in dtypes.items():
        if col not in out.columns:
            continue
        if dtype.startswith(("float", "int")):
            out[col] = pd.to_numeric(out[col], errors="coerce").astype(dtype)
        else:
            out[col] = out[col].astype(dtype)
    return out

def harmonize_ids(df: pd.DataFrame, id_col="site") -> pd.DataFrame:
    """Site codes as trimmed upper-case strings (' l1 ' -> 'L1')."""
    if id_col in df.columns:
        df = df.copy()
        df[id_col] = df[id_col].astype(str).str.strip().str.upper()
    return df

def make_sample_ids(df: pd.DataFrame, id_col: str = "sample_id",
                    site_col: str = "site", depth_col: str = "depth") -> pd.DataFrame:
    """
    Make sure every sample carries an explicit identifier.

    Existing ids are kept (as strings). Otherwise ids are built as
    '<site>_<depth>', which is unique for a single core.
    """
    df = df.copy()
    if id_col in df.columns:
        df[id_col] = df[id_col].astype(str).str.strip()
        return df
    missing = [c for c in (site_col, depth_col) if c not in df.columns]
    if missing:
        raise KeyError(f"Cannot build '{id_col}': columns not found: {missing}")
    depth = df[depth_col].map(lambda v: f"{float(v):g}")
    df.insert(0, id_col, df[site_col].astype(str) + "_" + depth)
    return df

def drop_duplicates_on_keys(df: pd.DataFrame, keys: list[str]) -> pd.DataFrame:
    """Keep the first row for every repeated key (e.g. a depth entered twice)."""
    return df.drop_duplicates(subset=keys[0] if len(keys) == 1 else keys)

def handle_missing(df: pd.DataFrame, strategy: str, cols: Sequence[str] | None = None) -> pd.DataFrame:
    """
    Fill or drop missing counts.

    A blank cell in a count table is an unseen taxon; fill those with
    "zero_for_absent_taxa".

    Args:
        df: species table
        strategy: "zero_for_absent_taxa", "median_by_column" or "drop_rows_if_any"
        cols: Restrict to these columns (optional, default all numeric columns)

    Returns:
        DataFrame with missing values handled according to strategy
    """
    df = df.copy()
    cols = list(cols) if cols is not None else list(df.select_dtypes(include="number").columns)
    if strategy == "zero_for_absent_taxa":
        df[cols] = df[cols].fillna(0.0)
    elif strategy == "median_by_column":
        df[cols] = df[cols].apply(lambda s: s.fillna(s.median()))
    elif strategy == "drop_rows_if_any":
        df = df.dropna(subset=cols)
    else:
        raise ValueError(f"Unknown missing strategy: {strategy}")
    return df

def ensure_nonnegative(df: pd.DataFrame, cols: Sequence[str] | None = None) -> pd.DataFrame:
    """
    Validate that numeric columns contain only non-negative values.

    Raises:
        ValueError: If negative values are found in specified columns
    """
    cols = list(cols) if cols is not None else list(df.select_dtypes(include="number").columns)
    if (df[cols] < 0).any().any():
        bad = [c for c in cols if (df[c] < 0).any()]
        raise ValueError(f"Negative values found in columns: {bad[:10]}")
    return df

def assign_periods(year: pd.Series,
                   boundaries: Sequence[float],
                   labels: Sequence[str]) -> pd.Series:
    """
    Label each sample with its period by thresholding year.

    Bins are left-closed: year < b0 -> labels[0], b0 <= year < b1 -> labels[1],
    year >= b1 -> labels[2]. Returns an ordered categorical aligned to `year`.
    """
    boundaries = [float(b) for b in boundaries]
    if len(labels) != len(boundaries) + 1:
        raise ValueError(f"Need {len(boundaries) + 1} labels for {len(boundaries)} boundaries, got {len(labels)}")
    if any(b2 <= b1 for b1, b2 in zip(boundaries, boundaries[1:])):
        raise ValueError(f"Period boundaries must be strictly increasing: {boundaries}")
    bins = [-np.inf, *boundaries, np.inf]
    out = pd.cut(year.astype(float), bins=bins, labels=list(labels), right=False, ordered=True)
    return out.rename("period")
