"""
Extract GRD episode rows from a CSV or Excel export:
- Reads every cell as text so identifiers keep their leading zeros
- Returns the header list and one dict per row, in source order
"""

from __future__ import annotations
import logging
from pathlib import Path
import pandas as pd
from grd_etl.core.config import EPISODES_FILE

log = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}

def _read_csv(path: Path) -> pd.DataFrame:
    opts = dict(dtype=str, keep_default_na=False, sep=None, engine="python")
    try:
        return pd.read_csv(path, encoding="utf-8-sig", **opts)
    except UnicodeDecodeError:
        log.warning("%s is not UTF-8, retrying as latin-1", path.name)
        return pd.read_csv(path, encoding="latin-1", **opts)

def read_episodes(path: str | Path = EPISODES_FILE) -> tuple[list[str], list[dict[str, str]]]:
    path = Path(path)
    log.info("Loading GRD episodes: %s", path)

    if path.suffix.lower() in EXCEL_SUFFIXES:
        df = pd.read_excel(path, sheet_name=0, dtype=str).fillna("")
    else:
        df = _read_csv(path)

    # headers are matched exactly downstream; only a BOM is removed
    df.columns = [str(c).strip("\ufeff") for c in df.columns]

    rows = df.to_dict("records")
    log.info("Extracted %d episode rows (%d columns)", len(rows), len(df.columns))
    return list(df.columns), rows
