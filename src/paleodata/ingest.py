from __future__ import annotations
from pathlib import Path
import pandas as pd
from .config import RAW_COUNTS

def read_counts(path: str | Path | None = None) -> pd.DataFrame:
    """
    Read a sample x taxa count table from CSV or Excel.

    Args:
        path: File to read (default: config.RAW_COUNTS). Excel files are
              read with openpyxl, anything else as CSV.

    Returns:
        pd.DataFrame: The raw table, one row per sample
    """
    path = Path(path or RAW_COUNTS)
    if path.suffix.lower() in (".xlsx", ".xlsm", ".xls"):
        return pd.read_excel(path, engine="openpyxl")
    return pd.read_csv(path)
