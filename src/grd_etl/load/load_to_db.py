"""
Persist GRD norms, patients and billed episodes.
- Norms are upserted by code; patients are find-or-create by RUT.
- Episode uniqueness is enforced by the database; a late duplicate surfaces
  as PersistenceError(conflict=True) for the row, never as a batch failure.
"""

from __future__ import annotations
import logging
from decimal import Decimal
from typing import Iterable, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from grd_etl.core.errors import PersistenceError
from grd_etl.models import AgreementPrice, Episode, GrdNorm, NormEntry, Patient
from grd_etl.models.candidate import EpisodeCandidate
from grd_etl.transforms.billing import BillingResult
from grd_etl.transforms.agreements import normalize_agreement, weight_tier
from grd_etl.transforms.classify import Classification

log = logging.getLogger(__name__)

UNKNOWN_RUT = "SIN-RUT"


class PriorEpisodes:
    """
    Container view of episode ids already stored, plus those persisted earlier
    in the current batch (so in-batch repeats are caught before the database).
    """

    def __init__(self, session: Session):
        self.session = session
        self.seen: set[str] = set()

    def add(self, episode_id: str) -> None:
        self.seen.add(episode_id)

    def __contains__(self, episode_id) -> bool:
        if not episode_id:
            return False
        if episode_id in self.seen:
            return True
        found = self.session.execute(
            select(Episode.id).where(Episode.episode_cmbd == episode_id)
        ).first()
        return found is not None


def _apply_norm(row: GrdNorm, entry: NormEntry) -> None:
    row.description = entry.description
    row.weight = entry.weight
    row.lower_cut = entry.lower_cut
    row.upper_cut = entry.upper_cut
    row.base_tariff = entry.base_tariff
    row.p25 = entry.p25
    row.p50 = entry.p50
    row.p75 = entry.p75

def upsert_norm_entries(session: Session, entries: Iterable[NormEntry]) -> int:
    existing = {n.code: n for n in session.scalars(select(GrdNorm))}
    created = updated = 0
    for entry in entries:
        row = existing.get(entry.code)
        if row is None:
            row = GrdNorm(code=entry.code)
            session.add(row)
            existing[entry.code] = row
            created += 1
        else:
            updated += 1
        _apply_norm(row, entry)
    session.commit()
    log.info("Norm upsert: %d created, %d updated", created, updated)
    return created + updated

def load_norm_entries(session: Session) -> dict[str, NormEntry]:
    """Read persisted norms back as value objects (rows without cut-offs are left out)."""
    out = {}
    for row in session.scalars(select(GrdNorm)):
        entry = NormEntry.from_row(row)
        if entry is not None:
            out[entry.code] = entry
    return out

def upsert_agreement_prices(session: Session, prices: Iterable[dict]) -> int:
    """Store agreement prices keyed on (agreement, tier); a later price replaces an earlier one."""
    existing = {(p.agreement, p.tier): p for p in session.scalars(select(AgreementPrice))}
    count = 0
    for price in prices:
        key = (normalize_agreement(price["agreement"]), price.get("tier"))
        row = existing.get(key)
        if row is None:
            row = AgreementPrice(agreement=key[0], tier=key[1])
            session.add(row)
            existing[key] = row
        row.price = price["price"]
        row.description = price.get("description")
        count += 1
    session.commit()
    log.info("Agreement prices stored: %d", count)
    return count

def _latest_price(session: Session, agreement: str, tier: Optional[str]) -> Optional[AgreementPrice]:
    tier_clause = AgreementPrice.tier.is_(None) if tier is None else AgreementPrice.tier == tier
    return session.scalars(
        select(AgreementPrice)
        .where(AgreementPrice.agreement == agreement, tier_clause)
        .order_by(AgreementPrice.created_at.desc(), AgreementPrice.id.desc())
    ).first()

def find_agreement_price(session: Session, agreement: Optional[str], weight) -> Optional[Decimal]:
    """
    Base price for ``agreement``: the price of the weight tier when the agreement
    is tiered, else its single price. None when the agreement has no price.
    """
    agreement = normalize_agreement(agreement)
    if agreement is None:
        return None
    row = None
    tier = weight_tier(weight)
    if tier is not None:
        row = _latest_price(session, agreement, tier)
    if row is None:
        row = _latest_price(session, agreement, None)
    if row is None or row.price is None:
        log.debug("No price for agreement %s (tier %s)", agreement, tier)
        return None
    return Decimal(row.price)

def find_or_create_patient(session: Session, candidate: EpisodeCandidate) -> Patient:
    rut = candidate.patient_id or UNKNOWN_RUT
    patient = session.scalars(select(Patient).where(Patient.rut == rut)).first()
    if patient is None:
        patient = Patient(rut=rut, name=candidate.patient_name, age=candidate.age, sex=candidate.sex)
        session.add(patient)
        session.flush()
        log.debug("Created patient %s", rut)
    return patient

def resolve_norm(session: Session, code: Optional[str], entry: Optional[NormEntry]) -> Optional[GrdNorm]:
    """
    Persisted GrdNorm for ``code``. When only the in-memory norm knows the code
    it is stored first. Unknown codes resolve to None (no stub rows).
    """
    if not code:
        return None
    row = session.scalars(select(GrdNorm).where(GrdNorm.code == code)).first()
    if row is None and entry is not None:
        row = GrdNorm(code=code)
        _apply_norm(row, entry)
        session.add(row)
        session.flush()
    return row

def build_episode(candidate: EpisodeCandidate, classification: Classification,
                  billing: BillingResult, patient: Patient, norm: Optional[GrdNorm],
                  agreement_tariff: Optional[Decimal] = None) -> Episode:
    return Episode(
        episode_cmbd=candidate.episode_id,
        facility=candidate.facility,
        folio=candidate.folio,
        episode_type=candidate.episode_type,
        discharge_service=candidate.discharge_service,
        agreement=candidate.agreement,
        admission_dt=candidate.admission,
        discharge_dt=candidate.discharge,
        grd_code=candidate.grd_code,
        grd_weight=candidate.grd_weight,
        length_of_stay=classification.length_of_stay,
        stay_tag=classification.tag,
        technology_flag=billing.technology_flag,
        technology_detail=billing.technology_detail,
        technology_amount=billing.technology_amount,
        newborn_amount=billing.newborn_amount,
        rescue_delay_days=candidate.rescue_delay_days,
        delay_payment=billing.delay_premium,
        outlier_payment=billing.outlier_premium,
        base_tariff=billing.base_tariff,
        agreement_tariff=agreement_tariff,
        final_amount=billing.final_amount,
        patient=patient,
        norm=norm,
    )

def save_episode(session: Session, episode: Episode) -> Episode:
    """Commit one episode. On failure the row's work is rolled back and PersistenceError raised."""
    try:
        session.add(episode)
        session.commit()
    except IntegrityError as e:
        session.rollback()
        log.warning("Episode %s conflicts with a stored row: %s", episode.episode_cmbd, e.orig)
        raise PersistenceError(
            f"Persistence conflict: episode {episode.episode_cmbd} already exists", conflict=True
        ) from e
    except SQLAlchemyError as e:
        session.rollback()
        log.error("Failed to save episode %s: %s", episode.episode_cmbd, e, exc_info=True)
        raise PersistenceError(f"Error saving episode {episode.episode_cmbd}: {e}") from e
    return episode
