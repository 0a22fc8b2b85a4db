import pandas as pd
import pytest

from paleodata.dataframe_ops import (
    OrderingError,
    wrap_columns,
    add_block,
    build_master,
    flatten_columns,
    get_block,
    list_blocks,
    set_block,
    split_samples,
)


def test_add_block_rejects_misaligned_index():
    # Two frames with the same sample ids in different orders
    df1 = pd.DataFrame({"sample_id": ["A", "B", "C"], "x": [1, 2, 3]}).set_index("sample_id")
    df2 = pd.DataFrame({"sample_id": ["C", "A", "B"], "y": [10, 20, 30]}).set_index("sample_id")

    master = wrap_columns(df1, block="taxa")

    # add_block requires identical indexes; mis-ordered index should raise
    with pytest.raises(OrderingError, match="different order"):
        add_block(master, df2, block="baseline")


def test_add_block_rejects_unknown_ids():
    df1 = pd.DataFrame({"x": [1, 2]}, index=["A", "B"])
    df2 = pd.DataFrame({"y": [1, 2]}, index=["A", "Z"])
    with pytest.raises(OrderingError, match="unknown"):
        add_block(wrap_columns(df1, "taxa"), df2, "baseline")


def test_add_block_keeps_rows_by_sample_id():
    df1 = pd.DataFrame({"sample_id": ["A", "B", "C"], "x": [1, 2, 3]}).set_index("sample_id")
    df2 = pd.DataFrame({"sample_id": ["A", "B", "C"], "y": [20, 30, 10]}).set_index("sample_id")

    merged = add_block(wrap_columns(df1, block="taxa"), df2, block="baseline")

    taxa = get_block(merged, "taxa")
    baseline = get_block(merged, "baseline")

    # A -> x=1, y=20; C -> x=3, y=10
    assert taxa.loc["A", "x"] == 1
    assert baseline.loc["A", "y"] == 20
    assert taxa.loc["C", "x"] == 3
    assert baseline.loc["C", "y"] == 10
    assert list_blocks(merged) == ["taxa", "baseline"]


def test_add_block_rejects_duplicate_columns():
    df = pd.DataFrame({"x": [1]}, index=["A"])
    master = wrap_columns(df, "taxa")
    with pytest.raises(ValueError):
        add_block(master, df, "taxa")


def test_split_samples_and_flatten():
    raw = pd.DataFrame({
        "sample_id": ["s1", "s2"],
        "site": ["L1", "L1"],
        "year": [1990.0, 1950.0],
        "Asterionella": [3, 0],
        "Cyclotella": [1, 5],
    })
    meta, species = split_samples(raw, ["site", "year"])
    assert list(meta.columns) == ["site", "year"]
    assert list(species.columns) == ["Asterionella", "Cyclotella"]

    flat = flatten_columns(build_master(meta, species))
    assert list(flat.columns) == ["meta__site", "meta__year", "taxa__Asterionella", "taxa__Cyclotella"]
    assert flat.index.name == "sample_id"


def test_split_samples_rejects_text_taxa():
    raw = pd.DataFrame({"sample_id": ["s1"], "year": [1.0], "note": ["odd"], "A": [1]})
    with pytest.raises(ValueError):
        split_samples(raw, ["year"])


def test_set_block_replaces_existing_block():
    df = pd.DataFrame({"x": [1, 2]}, index=["A", "B"])
    master = wrap_columns(df, "taxa")
    master = add_block(master, pd.Series([0.1, 0.2], index=["A", "B"], name="d"), "baseline")
    master = set_block(master, pd.Series([0.5, 0.6], index=["A", "B"], name="d"), "baseline")
    assert list_blocks(master) == ["taxa", "baseline"]
    assert get_block(master, "baseline")["d"].tolist() == [0.5, 0.6]
    with pytest.raises(KeyError):
        get_block(master, "prcurve")
