from __future__ import annotations
import logging
from pathlib import Path
from typing import Callable, TypeVar
import joblib
import pandas as pd
from .config import INTERIM, CACHE

logger = logging.getLogger(__name__)

T = TypeVar("T")

def save_interim(df: pd.DataFrame, name: str, directory: Path | None = None) -> Path:
    """
    Save a DataFrame to the interim data directory as a Parquet file.

    Args:
        df: The DataFrame to save
        name: The filename (without path) for the saved file
        directory: Override for config.INTERIM

    Returns:
        Path: The full path to the saved file
    """
    directory = Path(directory or INTERIM)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    df.to_parquet(path, index=True)
    return path

def load_interim(name: str, directory: Path | None = None) -> pd.DataFrame:
    """
    Load a DataFrame from the interim data directory.

    Args:
        name: The filename (without path) to load
        directory: Override for config.INTERIM

    Returns:
        pd.DataFrame: The loaded DataFrame
    """
    return pd.read_parquet(Path(directory or INTERIM) / name)

def cached(name: str, compute: Callable[[], T], cache_dir: Path | None = None, refresh: bool = False) -> T:
    """
    Load a stored result if present, else compute it and store it.

    Entries are opaque joblib pickles under cache_dir (default config.CACHE).
    The caller owns the key: a different seed or input needs a different name.
    """
    cache_dir = Path(cache_dir or CACHE)
    path = cache_dir / f"{name}.joblib"
    if path.exists() and not refresh:
        logger.info("Loading cached %s from %s", name, path)
        return joblib.load(path)
    result = compute()
    cache_dir.mkdir(parents=True, exist_ok=True)
    joblib.dump(result, path)
    logger.info("Cached %s to %s", name, path)
    return result
