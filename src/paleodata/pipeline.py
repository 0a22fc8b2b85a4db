from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence
import pandas as pd
from .config import (
    KEYS, ID_COL, SITE_COL, YEAR_COL, DEPTH_COL, PERIOD_COL, META_COLS,
    PERIOD_BOUNDARIES, PERIOD_LABELS,
)
from .ingest import read_counts
from .cleaning import (
    normalize_columns, lower_meta_columns, cast_types, harmonize_ids, make_sample_ids,
    drop_duplicates_on_keys, handle_missing, ensure_nonnegative, assign_periods,
)
from .dataframe_ops import split_samples, assert_same_index, build_master
from .validators import validate_samples, validate_counts
from .data_io import save_interim

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleSet:
    """Metadata and species counts for one core, both indexed by sample_id."""
    meta: pd.DataFrame
    species: pd.DataFrame

    def __post_init__(self):
        assert_same_index(self.meta, self.species, what="meta/species")

    @property
    def taxa(self) -> list[str]:
        return list(self.species.columns)

    def master(self) -> pd.DataFrame:
        return build_master(self.meta, self.species)


def prepare_samples(raw: pd.DataFrame,
                    boundaries: Sequence[float] = PERIOD_BOUNDARIES,
                    labels: Sequence[str] = PERIOD_LABELS,
                    meta_cols: Sequence[str] = META_COLS) -> SampleSet:
    """Clean, validate, derive periods and split a raw count table."""
    df = normalize_columns(raw)
    df = lower_meta_columns(df, [*meta_cols, ID_COL])
    df = harmonize_ids(df, SITE_COL)
    df = cast_types(df, {YEAR_COL: "float64", DEPTH_COL: "float64"})
    df = make_sample_ids(df, ID_COL, SITE_COL, DEPTH_COL)
    df = drop_duplicates_on_keys(df, KEYS)

    meta, species = split_samples(df, meta_cols, id_col=ID_COL)
    species = handle_missing(species, "zero_for_absent_taxa")
    species = ensure_nonnegative(species)
    meta = validate_samples(meta)
    species = validate_counts(species)

    meta[PERIOD_COL] = assign_periods(meta[YEAR_COL], boundaries, labels)
    logger.info("Loaded %d samples x %d taxa", species.shape[0], species.shape[1])
    return SampleSet(meta=meta, species=species)


def load_dataset(path: str | Path | None = None, **kwargs) -> SampleSet:
    """Read a raw count table and return the cleaned SampleSet."""
    return prepare_samples(read_counts(path), **kwargs)


def make_interim(path: str | Path | None = None, directory: Path | None = None) -> SampleSet:
    """Load the raw table and write the cleaned meta and taxa tables as Parquet."""
    samples = load_dataset(path)
    save_interim(samples.meta.assign(**{PERIOD_COL: samples.meta[PERIOD_COL].astype(str)}),
                 "meta_clean.parquet", directory)
    save_interim(samples.species, "taxa_clean.parquet", directory)
    return samples
