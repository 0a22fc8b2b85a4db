from .transform import (
    apply_transform, proportions, hellinger_transform, chord_transform,
    sqrt_transform, log1p_transform, log1p_standardize,
)
from .dataframe_ops import (
    OrderingError, wrap_columns, add_block, set_block, get_block,
    build_master, split_samples, flatten_columns, assert_same_index,
)
from .pipeline import SampleSet, prepare_samples, load_dataset
from .data_io import cached

__all__ = [
    "apply_transform",
    "proportions",
    "hellinger_transform",
    "chord_transform",
    "sqrt_transform",
    "log1p_transform",
    "log1p_standardize",
    "OrderingError",
    "wrap_columns",
    "add_block",
    "set_block",
    "get_block",
    "build_master",
    "split_samples",
    "flatten_columns",
    "assert_same_index",
    "SampleSet",
    "prepare_samples",
    "load_dataset",
    "cached",
]
