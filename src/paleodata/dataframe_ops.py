from __future__ import annotations
from typing import Iterable, Optional, Sequence, Union
import pandas as pd

# -------------------------------
# Column MultiIndex helpers
# -------------------------------

_BLOCK_NAMES = ("block", "var")


class OrderingError(ValueError):
    """Raised when two sample-indexed tables are not aligned row for row."""


def _ensure_index(df: pd.DataFrame, index: Optional[Union[str, Iterable[str]]] = None) -> pd.DataFrame:
    """Ensure df has an index set if index is provided; otherwise return as-is."""
    if index is None:
        return df
    if isinstance(index, str):
        index = [index]
    if any(c not in df.columns for c in index):
        missing = [c for c in index if c not in df.columns]
        raise KeyError(f"Index columns not found: {missing}. Available: {list(df.columns)[:20]}...")
    return df.set_index(list(index), drop=True)

def wrap_columns(
    df: pd.DataFrame,
    block: str,
    *,
    index: Optional[Union[str, Iterable[str]]] = None,
) -> pd.DataFrame:
    """
    Wrap columns of df into a (block, var) MultiIndex.
    Optionally set index first (e.g., index='sample_id').
    """
    out = _ensure_index(df, index=index).copy()
    out.columns = pd.MultiIndex.from_product([[str(block)], out.columns], names=_BLOCK_NAMES)
    return out

def add_block(master: pd.DataFrame, block_df: pd.DataFrame, block: str) -> pd.DataFrame:
    """
    Add a wrapped block into master via .join on the index.

    master and block_df must carry the same sample ids in the same order;
    anything else raises OrderingError instead of joining misaligned rows.
    """
    if isinstance(block_df, pd.Series):
        block_df = block_df.to_frame()
    wrapped = wrap_columns(block_df, block)
    assert_same_index(master, wrapped, what=f"block '{block}'")
    overlap = master.columns.intersection(wrapped.columns)
    if len(overlap) > 0:
        raise ValueError(f"Columns already exist in master: {list(overlap)[:10]} ...")
    return master.join(wrapped)

def set_block(master: pd.DataFrame, block_df: pd.DataFrame, block: str) -> pd.DataFrame:
    """
    Replace or insert a block in master.
    """
    if isinstance(block_df, pd.Series):
        block_df = block_df.to_frame()
    wrapped = wrap_columns(block_df, block)
    assert_same_index(master, wrapped, what=f"block '{block}'")
    out = master.drop(columns=[block], level="block", errors="ignore") if has_block(master, block) else master
    return out.join(wrapped)

def get_block(master: pd.DataFrame, block: str) -> pd.DataFrame:
    """Return a single block as a plain DataFrame (drop column MI)."""
    if not has_block(master, block):
        raise KeyError(f"Block '{block}' not found. Available: {list_blocks(master)}")
    df = master.loc[:, (block, slice(None))].copy()
    df.columns = df.columns.get_level_values("var")
    return df

def has_block(master: pd.DataFrame, block: str) -> bool:
    return isinstance(master.columns, pd.MultiIndex) and block in master.columns.get_level_values("block")

def list_blocks(master: pd.DataFrame) -> list[str]:
    if not isinstance(master.columns, pd.MultiIndex):
        return []
    return list(master.columns.get_level_values("block").unique())

def build_master(meta: pd.DataFrame, species: pd.DataFrame) -> pd.DataFrame:
    """Start the joined sample table from metadata and counts (blocks 'meta' and 'taxa')."""
    master = wrap_columns(meta, "meta")
    return add_block(master, species, "taxa")

# -------------------------------
# Split / align
# -------------------------------

def split_samples(df: pd.DataFrame, meta_cols: Sequence[str], id_col: str = "sample_id") -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split a wide sample table into (meta, species), both indexed by id_col.

    Taxa are the numeric columns that are neither metadata nor the id.
    """
    indexed = _ensure_index(df, index=id_col)
    meta_cols = [c for c in meta_cols if c in indexed.columns]
    rest = indexed.drop(columns=meta_cols)
    species = rest.select_dtypes(include="number")
    dropped = [c for c in rest.columns if c not in species.columns]
    if dropped:
        raise ValueError(f"Non-numeric columns are neither metadata nor taxa: {dropped[:10]}")
    if species.shape[1] == 0:
        raise ValueError("No taxon columns found")
    return indexed[meta_cols].copy(), species.copy()

# -------------------------------
# Flatten
# -------------------------------

def flatten_columns(df: pd.DataFrame, sep: str = "__", blocks: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Flatten MultiIndex columns to strings like 'baseline__dist_to_centroid'.
    blocks: keep only these blocks (in this order). Leaves single-level columns unchanged.
    """
    out = df.copy()
    if blocks is not None:
        out = pd.concat([out.loc[:, (b, slice(None))] for b in blocks], axis=1)
    if isinstance(out.columns, pd.MultiIndex):
        out.columns = [
            sep.join([str(x) for x in tup if x not in ("", None)])
            for tup in out.columns.to_flat_index()
        ]
    return out

# -------------------------------
# Validation / Safety
# -------------------------------

def assert_same_index(a: Union[pd.DataFrame, pd.Series], b: Union[pd.DataFrame, pd.Series], what: str = "frames") -> None:
    """Raise OrderingError unless a and b carry identical sample ids in identical order."""
    if a.index.equals(b.index):
        return
    if len(a.index) != len(b.index):
        raise OrderingError(f"Index mismatch for {what}: {len(a.index)} vs {len(b.index)} rows")
    if set(a.index) == set(b.index):
        raise OrderingError(
            f"Index mismatch for {what}: same sample ids in a different order. "
            "Reindex one table to the other before joining."
        )
    extra = [i for i in b.index if i not in set(a.index)]
    raise OrderingError(f"Index mismatch for {what}: unknown sample ids (first 10): {extra[:10]}")

def assert_unique_index(df: pd.DataFrame, name: str = "frame") -> None:
    if not df.index.is_unique:
        dups = df.index[df.index.duplicated()].unique()
        raise ValueError(f"{name} has duplicate index values (first 10): {dups[:10].tolist()}")
