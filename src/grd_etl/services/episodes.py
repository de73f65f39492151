"""
Episode updates after ingestion, and the external JSON representation.
"""

from __future__ import annotations
import json
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional
import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session
from grd_etl.core.errors import InvalidUpdate
from grd_etl.load.load_to_db import find_agreement_price
from grd_etl.models import Episode, NormEntry
from grd_etl.models.schemas import FINANCE_STATUSES, EpisodeOut
from grd_etl.services.permissions import EDITABLE_FIELDS, READ_ONLY_FIELDS, require_access
from grd_etl.transforms.billing import BillingInput, compute_billing

log = logging.getLogger(__name__)

# recomputed on every change, never written directly
DERIVED_FIELDS = frozenset({"montoFinal"})


def _number(v: Any) -> Optional[Decimal]:
    if v is None:
        return None
    if isinstance(v, bool):
        raise ValueError("expected a number")
    try:
        d = Decimal(str(v).strip().replace(",", "."))
    except InvalidOperation:
        raise ValueError(f"not a number: {v!r}") from None
    if not d.is_finite():
        raise ValueError(f"not a number: {v!r}")
    return d

def _money(v: Any) -> Optional[Decimal]:
    d = _number(v)
    if d is not None and d < 0:
        raise ValueError(f"amounts cannot be negative: {v!r}")
    return d

def _days(v: Any) -> Optional[int]:
    d = _number(v)
    if d is None:
        return None
    if d < 0 or d != d.to_integral_value():
        raise ValueError(f"expected a non-negative whole number of days: {v!r}")
    return int(d)

def _flag(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str) and v.strip().upper() in ("S", "N"):
        return v.strip().upper() == "S"
    raise ValueError("expected 'S', 'N' or a boolean")

def _review_flag(v: Any) -> Optional[bool]:
    if v is None or isinstance(v, bool):
        return v
    raise ValueError("expected true, false or null")

def _status(v: Any) -> Optional[str]:
    if v is None or (isinstance(v, str) and not v.strip()):
        return None
    if v not in FINANCE_STATUSES:
        raise ValueError(f"expected one of {', '.join(FINANCE_STATUSES)}")
    return v

def _text(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None

def _timestamp(v: Any) -> Optional[datetime]:
    if v is None or isinstance(v, datetime):
        return v
    ts = pd.to_datetime(str(v), errors="coerce")
    if pd.isna(ts):
        raise ValueError(f"not a date: {v!r}")
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts.to_pydatetime()

def _document(v: Any) -> Any:
    if isinstance(v, str):
        return {"texto": v} if v.strip() else None
    return v

# API field -> (Episode attribute, coercer)
UPDATABLE: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "estadoRN": ("finance_status", _status),
    "montoRN": ("newborn_amount", _money),
    "at": ("technology_flag", _flag),
    "atDetalle": ("technology_detail", _text),
    "montoAT": ("technology_amount", _money),
    "diasDemoraRescate": ("rescue_delay_days", _days),
    "pagoDemora": ("delay_payment", _money),
    "pagoOutlierSup": ("outlier_payment", _money),
    "precioBaseTramo": ("tariff_override", _money),
    "documentacion": ("documentation", _document),
    "validado": ("validated", _review_flag),
    "comentariosGestion": ("review_comment", _text),
    "fechaRevision": ("reviewed_at", _timestamp),
    "revisadoPor": ("reviewed_by", _text),
}


def get_episode(session: Session, episode_id: str) -> Optional[Episode]:
    return session.scalars(select(Episode).where(Episode.episode_cmbd == episode_id)).first()

def recompute_billing(episode: Episode) -> Episode:
    result = compute_billing(BillingInput.from_episode(episode), NormEntry.from_row(episode.norm))
    episode.technology_detail = result.technology_detail
    episode.technology_amount = result.technology_amount
    episode.newborn_amount = result.newborn_amount
    episode.outlier_payment = result.outlier_premium
    episode.delay_payment = result.delay_premium
    episode.base_tariff = result.base_tariff
    episode.final_amount = result.final_amount
    return episode

def reprice_agreements(session: Session) -> int:
    """
    Re-resolve every episode's agreement price after the price list changed and
    recompute its billing. Returns the number of episodes whose final amount moved.
    """
    changed = 0
    episodes = session.scalars(select(Episode).where(Episode.agreement.is_not(None))).all()
    for episode in episodes:
        weight = episode.grd_weight
        if weight is None and episode.norm is not None:
            weight = episode.norm.weight
        episode.agreement_tariff = find_agreement_price(session, episode.agreement, weight)
        before = episode.final_amount
        recompute_billing(episode)
        if before != episode.final_amount:
            changed += 1
    session.commit()
    log.info("Agreement repricing: %d episodes changed", changed)
    return changed

def _coerce_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    derived = sorted(set(changes) & DERIVED_FIELDS)
    if derived:
        raise InvalidUpdate(f"Derived fields cannot be written: {', '.join(derived)}")
    read_only = sorted(set(changes) & READ_ONLY_FIELDS)
    if read_only:
        raise InvalidUpdate(f"Fields are read-only: {', '.join(read_only)}")
    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        raise InvalidUpdate(f"Unknown fields: {', '.join(unknown)}")

    coerced = {}
    for field_name, value in changes.items():
        attr, coerce = UPDATABLE[field_name]
        try:
            coerced[attr] = coerce(value)
        except ValueError as e:
            raise InvalidUpdate(f"Invalid value for {field_name}: {e}") from e
    return coerced

def update_episode(session: Session, episode_id: str, role: str, changes: Mapping[str, Any],
                   actor: Optional[str] = None) -> Episode:
    """
    Apply a partial update on behalf of ``role``. All-or-nothing: a forbidden
    or invalid field rejects the whole request before anything is written.
    Billing is recomputed afterwards.
    """
    require_access(role, changes.keys())
    coerced = _coerce_changes(changes)

    episode = get_episode(session, episode_id)
    if episode is None:
        raise InvalidUpdate(f"Episode not found: {episode_id}")

    for attr, value in coerced.items():
        setattr(episode, attr, value)
    if "validado" in changes:
        if "fechaRevision" not in changes:
            episode.reviewed_at = datetime.utcnow()
        if actor and "revisadoPor" not in changes:
            episode.reviewed_by = actor

    recompute_billing(episode)
    session.commit()
    log.info("Episode %s updated by %s: %s", episode_id, role, sorted(changes))
    return episode

def _num(x) -> Optional[float]:
    return float(x) if x is not None else None

def episode_to_json(episode: Episode) -> dict:
    """Render an episode for external consumers (``at`` as S/N, numbers as numbers)."""
    doc = episode.documentation
    if isinstance(doc, dict) and "texto" in doc:
        doc = doc["texto"]
    elif doc is not None and not isinstance(doc, str):
        doc = json.dumps(doc)

    out = EpisodeOut(
        episode_id=episode.episode_cmbd,
        rut=episode.patient.rut if episode.patient else "",
        patient_name=(episode.patient.name or "") if episode.patient else "",
        facility=episode.facility or "",
        agreement=episode.agreement,
        admission_date=episode.admission_dt.date() if episode.admission_dt else None,
        discharge_date=episode.discharge_dt.date() if episode.discharge_dt else None,
        discharge_service=episode.discharge_service or "",
        grd_code=episode.grd_code or "",
        grd_weight=_num(episode.grd_weight),
        length_of_stay=episode.length_of_stay,
        stay_tag=episode.stay_tag,
        finance_status=episode.finance_status,
        technology_flag="S" if episode.technology_flag else "N",
        technology_detail=episode.technology_detail,
        technology_amount=_num(episode.technology_amount),
        newborn_amount=_num(episode.newborn_amount),
        rescue_delay_days=episode.rescue_delay_days,
        delay_payment=_num(episode.delay_payment),
        outlier_payment=_num(episode.outlier_payment),
        base_tariff=_num(episode.base_tariff),
        final_amount=_num(episode.final_amount) or 0.0,
        documentation=doc,
        validated=episode.validated,
        review_comment=episode.review_comment,
        reviewed_at=episode.reviewed_at,
        reviewed_by=episode.reviewed_by,
    )
    return out.model_dump(mode="json", by_alias=True)
