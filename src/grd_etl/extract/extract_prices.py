"""
Extract agreement (convenio) base prices from a CSV or Excel sheet.
Columns: Convenio, Tramo (optional), Precio, Descripción (optional).
"""

from __future__ import annotations
import logging
from decimal import Decimal
from pathlib import Path
import numpy as np
import pandas as pd
from grd_etl.core.errors import GrdEtlError
from grd_etl.transforms.agreements import normalize_agreement
from grd_etl.transforms.normalize import parse_amount

log = logging.getLogger(__name__)

PRICE_COLUMNS = {
    "Convenio": "agreement",
    "Tramo": "tier",
    "Precio": "price",
    "Descripción": "description",
}


def read_prices(path: str | Path) -> list[dict]:
    """One dict per usable row: agreement, tier (or None), price (Decimal >= 0), description."""
    path = Path(path)
    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    else:
        df = pd.read_excel(path, sheet_name=0, dtype=str)
    df = df.rename(columns=lambda c: str(c).strip()).rename(columns=PRICE_COLUMNS)
    missing = [c for c in ("agreement", "price") if c not in df.columns]
    if missing:
        raise GrdEtlError(f"Price sheet {path.name} lacks columns: {missing}")
    df = df.replace({"": np.nan})

    prices, skipped = [], 0
    for rec in df.to_dict("records"):
        agreement = normalize_agreement(rec.get("agreement") if pd.notna(rec.get("agreement")) else None)
        raw_price = rec.get("price")
        price = parse_amount(str(raw_price)) if pd.notna(raw_price) else None
        if agreement is None or price is None or price < Decimal("0"):
            skipped += 1
            continue
        tier = rec.get("tier")
        desc = rec.get("description")
        prices.append({
            "agreement": agreement,
            "tier": str(tier).strip().upper() if pd.notna(tier) else None,
            "price": price,
            "description": str(desc).strip() if pd.notna(desc) else None,
        })

    if skipped:
        log.warning("Prices: skipped %d rows without agreement or a non-negative price", skipped)
    log.info("Extracted %d agreement prices from %s", len(prices), path.name)
    return prices
