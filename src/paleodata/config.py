from __future__ import annotations
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
DATA = ROOT / "data"
RAW = DATA / "raw"
INTERIM = DATA / "interim"
PROC = DATA / "processed"
CACHE = DATA / "cache"

# raw count table (csv or xlsx)
RAW_COUNTS = RAW / "counts.csv"

# keys
KEYS = ["sample_id"]  # shared key for joins
ID_COL = "sample_id"
SITE_COL = "site"
YEAR_COL = "year"
DEPTH_COL = "depth"
PERIOD_COL = "period"
META_COLS = [SITE_COL, YEAR_COL, DEPTH_COL]

# period thresholds on year: < first, [first, second), >= second
PERIOD_BOUNDARIES = (1700.0, 1900.0)
PERIOD_LABELS = ("pre-contact", "contact", "post-contact")
