from __future__ import annotations
import pandas as pd
from pandera import Column, DataFrameSchema, Check

from .config import SITE_COL, YEAR_COL, DEPTH_COL
from .dataframe_ops import assert_unique_index

schema_samples = DataFrameSchema({
    SITE_COL: Column(str, nullable=False, coerce=True),
    YEAR_COL: Column(float, nullable=False, coerce=True),
    DEPTH_COL: Column(float, Check.ge(0), nullable=False, coerce=True),
}, unique_column_names=True)

def validate_samples(df: pd.DataFrame) -> pd.DataFrame:
    """Validate sample metadata; the index (sample ids) must be unique."""
    assert_unique_index(df, "sample metadata")
    return schema_samples.validate(df, lazy=True)

def validate_counts(species: pd.DataFrame) -> pd.DataFrame:
    """Validate a species matrix: numeric, non-null, non-negative counts."""
    schema = DataFrameSchema(
        {str(c): Column(float, [Check.ge(0)], nullable=False, coerce=True) for c in species.columns},
        strict=True,
    )
    renamed = species.rename(columns=str)
    validated = schema.validate(renamed, lazy=True)
    validated.columns = species.columns
    return validated
