"""
Extract the Norma MINSAL (GRD weights, cut-offs, tariffs, percentiles) from a
remote workbook, a local Excel/CSV file or raw bytes.
"""

from __future__ import annotations
import io
import logging
import math
import zipfile
from decimal import Decimal, InvalidOperation
from pathlib import Path
import numpy as np
import pandas as pd
import requests
from grd_etl.core.config import NORM_SHEET_NAME, NORM_TIMEOUT_SECONDS
from grd_etl.core.errors import NormLoadError
from grd_etl.models.norm import NormEntry

log = logging.getLogger(__name__)

# source column -> NormEntry attribute
NORM_COLUMNS = {
    "GRD": "code",
    "Descripción": "description",
    "Peso Total": "weight",
    "Punto Corte Inferior": "lower_cut",
    "Punto Corte Superior": "upper_cut",
    "Precio Base": "base_tariff",
    "Percentil 25": "p25",
    "Percentil 50": "p50",
    "Percentil 75": "p75",
}

def _to_decimal(x) -> Decimal | None:
    if x is None or (isinstance(x, float) and math.isnan(x)):
        return None
    s = str(x).strip().replace(",", ".")
    if not s or s.lower() in {"nan", "null", "none"}:
        return None
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    return d if d.is_finite() else None

def _clean_code(x) -> str | None:
    if x is None or (isinstance(x, float) and math.isnan(x)):
        return None
    s = str(x).strip()
    # Excel hands integer-looking codes back as floats
    if s.endswith(".0") and s[:-2].isdigit():
        s = s[:-2]
    return s or None

def download_workbook(url: str, timeout: float = NORM_TIMEOUT_SECONDS) -> bytes:
    log.info("Downloading Norma MINSAL: %s", url)
    headers = {"User-Agent": "grd-etl/1.0"}
    try:
        resp = requests.get(url, headers=headers, timeout=timeout, allow_redirects=True)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise NormLoadError(f"Norm source unreachable: {e}") from e
    return resp.content

def read_norm_frame(source, sheet_name: str = NORM_SHEET_NAME) -> pd.DataFrame:
    """Read the raw norm sheet into a DataFrame without interpreting it."""
    try:
        if isinstance(source, (bytes, bytearray)):
            return pd.read_excel(io.BytesIO(source), sheet_name=sheet_name)
        s = str(source)
        if s.startswith(("http://", "https://")):
            return pd.read_excel(io.BytesIO(download_workbook(s)), sheet_name=sheet_name)
        path = Path(s)
        if path.suffix.lower() == ".csv":
            return pd.read_csv(path, dtype=str)
        return pd.read_excel(path, sheet_name=sheet_name)
    except NormLoadError:
        raise
    except (OSError, ValueError, KeyError, zipfile.BadZipFile) as e:
        # missing file, missing sheet, unreadable workbook
        raise NormLoadError(f"Norm source unreadable ({source}): {e}") from e

def parse_norm_frame(df: pd.DataFrame) -> dict[str, NormEntry]:
    df = df.rename(columns=lambda c: str(c).strip()).rename(columns=NORM_COLUMNS)
    df = df.replace({"": np.nan, "-": np.nan})
    if "code" not in df.columns:
        raise NormLoadError(f"Norm sheet has no 'GRD' column (found: {list(df.columns)})")

    entries: dict[str, NormEntry] = {}
    skipped = 0
    for rec in df.to_dict("records"):
        code = _clean_code(rec.get("code"))
        if not code:
            continue
        pci = _to_decimal(rec.get("lower_cut"))
        pcs = _to_decimal(rec.get("upper_cut"))
        if pci is None or pcs is None or pci < 0:
            skipped += 1
            continue
        if pci > pcs:
            log.warning("GRD %s: lower cut-off %s above upper %s, skipped", code, pci, pcs)
            skipped += 1
            continue

        desc = rec.get("description")
        entries[code] = NormEntry(
            code=code,
            weight=_to_decimal(rec.get("weight")) or Decimal("0"),
            lower_cut=int(pci),
            upper_cut=int(pcs),
            base_tariff=_to_decimal(rec.get("base_tariff")) or Decimal("0"),
            description=None if desc is None or pd.isna(desc) else str(desc).strip(),
            p25=_to_decimal(rec.get("p25")),
            p50=_to_decimal(rec.get("p50")),
            p75=_to_decimal(rec.get("p75")),
        )

    if skipped:
        log.warning("Norm: skipped %d rows without finite cut-offs", skipped)
    return entries

def load_norm(source, sheet_name: str = NORM_SHEET_NAME) -> dict[str, NormEntry]:
    df = read_norm_frame(source, sheet_name=sheet_name)
    entries = parse_norm_frame(df)
    log.info("Norm rules loaded: %d GRD codes", len(entries))
    return entries
