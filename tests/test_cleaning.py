# tests/test_cleaning.py
import numpy as np
import pandas as pd
import pytest
from paleodata.cleaning import (
    assign_periods, drop_duplicates_on_keys, handle_missing, harmonize_ids,
    make_sample_ids, normalize_columns,
)

def test_drop_duplicates_on_keys():
    df = pd.DataFrame({"sample_id": ["A_1", "A_1"], "x": [1, 1]})
    out = drop_duplicates_on_keys(df, keys=["sample_id"])
    assert len(out) == 1

def test_handle_missing_zero_for_taxa():
    df = pd.DataFrame({"Cyclotella": [1, None], "Aulacoseira": [None, 2.0]})
    out = handle_missing(df, "zero_for_absent_taxa")
    assert out.isna().sum().sum() == 0
    assert float(out.loc[0, "Aulacoseira"]) == 0.0

def test_handle_missing_unknown_strategy():
    with pytest.raises(ValueError):
        handle_missing(pd.DataFrame({"a": [1.0]}), "interpolate")

def test_harmonize_ids_upper_trim():
    df = pd.DataFrame({"site": [" abc ", "X-1"], "v": [1, 2]})
    out = harmonize_ids(df)
    assert list(out["site"]) == ["ABC", "X-1"]

def test_normalize_columns_keeps_taxon_case():
    df = pd.DataFrame(columns=[" Year ", "Fragilaria crotonensis"])
    out = normalize_columns(df)
    assert list(out.columns) == ["Year", "Fragilaria_crotonensis"]

def test_make_sample_ids_from_site_and_depth():
    df = pd.DataFrame({"site": ["L1", "L1"], "depth": [0.5, 10.0]})
    out = make_sample_ids(df)
    assert list(out["sample_id"]) == ["L1_0.5", "L1_10"]

def test_assign_periods_left_closed():
    year = pd.Series([1650.0, 1700.0, 1899.0, 1900.0, 2000.0])
    out = assign_periods(year, (1700, 1900), ("pre", "contact", "post"))
    assert list(out.astype(str)) == ["pre", "contact", "contact", "post", "post"]
    assert out.cat.ordered

def test_assign_periods_rejects_bad_boundaries():
    with pytest.raises(ValueError):
        assign_periods(pd.Series([1.0]), (1900, 1700), ("a", "b", "c"))
    with pytest.raises(ValueError):
        assign_periods(pd.Series([1.0]), (1700, 1900), ("a", "b"))
