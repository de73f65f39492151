"""
Normalize raw GRD export rows (one dict per CSV/Excel row) into EpisodeCandidate.

Normalization is total: it never raises. Values that cannot be coerced become
absent and their raw text is kept in ``candidate.unparsed`` for the validator.
"""

from __future__ import annotations
import logging
import math
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping
import pandas as pd
from grd_etl.models.candidate import EpisodeCandidate
from grd_etl.models.schemas import StructureWarning

log = logging.getLogger(__name__)

# source header (exact, as exported) -> (candidate field, kind)
COLUMN_MAP = {
    "Episodio CMBD": ("episode_id", "text"),
    "Hospital (Descripción)": ("facility", "text"),
    "ID Derivación": ("folio", "text"),
    "Tipo Actividad": ("episode_type", "text"),
    "Servicio Egreso (Descripción)": ("discharge_service", "text"),
    "Convenio": ("agreement", "code"),
    "RUT": ("patient_id", "code"),
    "Nombre": ("patient_name", "text"),
    "Edad en años": ("age", "int"),
    "Sexo  (Desc)": ("sex", "sex"),
    "Fecha Ingreso completa": ("admission", "date"),
    "Fecha Completa": ("discharge", "date"),
    "Días de estada": ("declared_stay", "days"),
    "IR GRD (Código)": ("grd_code", "code"),
    "IR GRD": ("grd_description", "text"),
    "Peso GRD Medio (Todos)": ("grd_weight", "decimal"),
    "AT (S/N)": ("technology_flag", "bool"),
    "AT Detalle": ("technology_detail", "text"),
    "Monto AT": ("technology_amount", "decimal"),
    "Monto RN": ("newborn_amount", "decimal"),
    "Días Demora Rescate": ("rescue_delay_days", "days"),
    "Pago Demora Rescate": ("delay_payment", "decimal"),
    "Pago por Outlier Superior": ("outlier_payment", "decimal"),
}
FIELD_HEADERS = {fld: header for header, (fld, _kind) in COLUMN_MAP.items()}

# headers whose absence is reported as a structure warning
EXPECTED_HEADERS = [
    "Episodio CMBD", "Hospital (Descripción)", "RUT", "IR GRD (Código)",
    "Fecha Ingreso completa", "Fecha Completa",
]

MISSING_TOKENS = {"", "null"}
TRUE_TOKENS = {"true", "s", "si", "sí", "1", "yes"}
FALSE_TOKENS = {"false", "n", "no", "0"}
SEX_MAP = {
    "m": "M", "masculino": "M", "hombre": "M", "varon": "M", "varón": "M",
    "f": "F", "femenino": "F", "mujer": "F",
}

THOUSANDS_RX = re.compile(r"^-?\d{1,3}(\.\d{3})+$")
ISO_RX = re.compile(r"^\d{4}-\d{1,2}-\d{1,2}")
DMY_RX = re.compile(r"^\d{1,2}[/-]\d{1,2}[/-]\d{4}")

# helpers
def _text(x: Any) -> str | None:
    if x is None or (isinstance(x, float) and math.isnan(x)):
        return None
    s = " ".join(str(x).split())
    return None if s.lower() in MISSING_TOKENS else s

def parse_amount(s: str) -> Decimal | None:
    s = s.replace("$", "").replace(" ", "")
    if THOUSANDS_RX.match(s):
        s = s.replace(".", "")
    elif "," in s and "." in s:
        s = s.replace(".", "").replace(",", ".")
    else:
        s = s.replace(",", ".")
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    return d if d.is_finite() else None

def _int(s: str) -> int | None:
    d = parse_amount(s)
    return int(d) if d is not None else None

def _days(s: str) -> int | None:
    """Day counts are whole and non-negative."""
    n = _int(s)
    return n if n is not None and n >= 0 else None

def _bool(s: str) -> bool | None:
    s = s.lower()
    if s in TRUE_TOKENS:
        return True
    if s in FALSE_TOKENS:
        return False
    return None

def _parse_dt(s: str) -> datetime | None:
    if ISO_RX.match(s):
        ts = pd.to_datetime(s, errors="coerce")
    elif DMY_RX.match(s):
        ts = pd.to_datetime(s, dayfirst=True, errors="coerce")
    else:
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts.to_pydatetime()

def _sex(s: str) -> str:
    return SEX_MAP.get(s.lower(), s.upper())

def _coerce(value: Any, kind: str):
    """Return (coerced, ok). ok is False when present text could not be coerced."""
    if kind == "date" and isinstance(value, datetime):
        return (None, True) if pd.isna(value) else (pd.Timestamp(value).to_pydatetime(), True)
    if kind == "bool" and isinstance(value, bool):
        return value, True
    s = _text(value)
    if s is None:
        return None, True
    if kind == "text":
        return s, True
    if kind == "code":
        return s.upper(), True
    if kind == "sex":
        return _sex(s), True
    parsers = {"int": _int, "days": _days, "decimal": parse_amount, "bool": _bool, "date": _parse_dt}
    parsed = parsers[kind](s)
    return parsed, parsed is not None

def normalize(raw_row: Mapping[str, Any]) -> EpisodeCandidate:
    candidate = EpisodeCandidate()
    for header, raw in raw_row.items():
        mapping = COLUMN_MAP.get(header)
        if mapping is None:
            continue
        fld, kind = mapping
        value, ok = _coerce(raw, kind)
        if not ok:
            candidate.unparsed[fld] = str(raw)
            continue
        if value is None:
            continue
        setattr(candidate, fld, value)
    return candidate

def check_structure(headers: Iterable[str]) -> list[StructureWarning]:
    headers = [str(h) for h in headers]
    warnings = []

    missing = [h for h in EXPECTED_HEADERS if h not in headers]
    if missing:
        warnings.append(StructureWarning(
            type="missing_columns",
            message="Expected columns missing; rows are still validated one by one.",
            missing=missing,
        ))

    for h in headers:
        if h not in COLUMN_MAP:
            warnings.append(StructureWarning(
                type="unknown_column",
                column=h,
                message="Unrecognized column; ignored.",
            ))

    if warnings:
        log.warning("Structure check: %d warnings (missing=%s)", len(warnings), missing)
    return warnings
