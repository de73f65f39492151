"""
ETL service - drives GRD export rows through normalize, validate, classify,
bill and persist, one row at a time in source order, and builds the batch report.
"""

from __future__ import annotations
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional
from sqlalchemy.orm import Session
from grd_etl.core.config import BATCH_REPORT
from grd_etl.core.db import create_tables, get_engine, get_session_factory
from grd_etl.core.errors import NormLoadError, PersistenceError
from grd_etl.extract.extract_episodes import read_episodes
from grd_etl.load.load_to_db import (
    PriorEpisodes, build_episode, find_agreement_price, find_or_create_patient, load_norm_entries, resolve_norm,
    save_episode,
)
from grd_etl.models import NormEntry
from grd_etl.models.candidate import EpisodeCandidate
from grd_etl.models.schemas import (
    BatchReport, ClassificationWarnings, DuplicateNotice, DuplicateSummary, ErrorRecord, RowWarning,
    StructureWarnings,
)
from grd_etl.services.norm_table import NormTable
from grd_etl.transforms.billing import BillingInput, compute_billing
from grd_etl.transforms.classify import Classification, classify, length_of_stay
from grd_etl.transforms.normalize import check_structure, normalize
from grd_etl.transforms.validate import validate

log = logging.getLogger(__name__)


def _raw(row: Mapping[str, Any]) -> dict:
    return {str(k): (v if v is None or isinstance(v, (str, int, float, bool)) else str(v)) for k, v in row.items()}

def _classify(candidate: EpisodeCandidate, norm_table: Optional[NormTable]) -> Classification:
    if norm_table is None:
        return Classification(
            length_of_stay=length_of_stay(candidate.admission, candidate.discharge, candidate.declared_stay)
        )
    return classify(candidate, norm_table)

def _persist(session: Session, candidate: EpisodeCandidate, classification: Classification,
             entry: Optional[NormEntry], norm_in_effect: bool):
    """
    With a norm table in effect, pricing uses the same entry as classification:
    a code missing from it is neither linked nor priced from older stored norms.
    """
    patient = find_or_create_patient(session, candidate)
    norm = None
    if entry is not None or not norm_in_effect:
        norm = resolve_norm(session, candidate.grd_code, entry)
    if entry is None and norm is not None:
        entry = NormEntry.from_row(norm)

    weight = candidate.grd_weight if candidate.grd_weight is not None else (entry.weight if entry else None)
    agreement_tariff = find_agreement_price(session, candidate.agreement, weight)
    billing = compute_billing(BillingInput.from_candidate(candidate, classification, agreement_tariff), entry)
    episode = build_episode(candidate, classification, billing, patient, norm, agreement_tariff)
    return save_episode(session, episode)

def ingest(rows: Iterable[Mapping[str, Any]], session: Session,
           norm_table: Optional[NormTable] = None, headers: Optional[list[str]] = None) -> BatchReport:
    """
    Process one batch. Never raises for row-level problems: rejections,
    duplicates, persistence failures and classification warnings all end up
    in the returned report.

    ``norm_table`` None (or never loaded) means no norm is available: episodes
    are stored unclassified and priced from persisted norms only.
    """
    rows = list(rows)
    if headers is None:
        headers = list(rows[0].keys()) if rows else []
    structure = check_structure(headers) if headers else []

    if norm_table is not None and not norm_table.loaded:
        norm_table = None
    if norm_table is None:
        log.error("No norm table available: classification skipped for this batch (%d rows)", len(rows))

    prior = PriorEpisodes(session)
    errors: list[ErrorRecord] = []
    duplicates: list[DuplicateNotice] = []
    warnings: list[RowWarning] = []
    persisted = 0

    for idx, raw in enumerate(rows, start=1):
        candidate = normalize(raw)
        result = validate(candidate, prior)
        if not result.ok:
            if result.duplicate:
                duplicates.append(DuplicateNotice(row=idx, episode=candidate.episode_id, reason=result.reason))
            else:
                errors.append(ErrorRecord(row=idx, error=result.reason, data=_raw(raw)))
            continue

        classification = _classify(candidate, norm_table)
        entry = norm_table.lookup(candidate.grd_code) if norm_table else None
        try:
            _persist(session, candidate, classification, entry, norm_in_effect=norm_table is not None)
        except PersistenceError as e:
            errors.append(ErrorRecord(row=idx, error=str(e), data=_raw(raw)))
            continue
        except Exception as e:
            session.rollback()
            log.error("Row %d: unexpected error while saving: %s", idx, e, exc_info=True)
            errors.append(ErrorRecord(row=idx, error=f"Error saving row: {e}", data=_raw(raw)))
            continue

        prior.add(candidate.episode_id)
        persisted += 1
        for message in classification.warnings:
            warnings.append(RowWarning(row=idx, episode=candidate.episode_id, message=message))

    if duplicates:
        log.warning("Omitted %d duplicate episodes", len(duplicates))
    if errors:
        log.warning("Rejected %d rows", len(errors))
    log.info("Batch complete: %d rows, %d persisted, %d errors, %d duplicates, %d warnings",
             len(rows), persisted, len(errors), len(duplicates), len(warnings))

    return BatchReport(
        total_rows=len(rows),
        valid_rows=persisted,
        invalid_rows=len(errors),
        errors=errors,
        duplicates=DuplicateSummary(count=len(duplicates), details=duplicates),
        structure_warnings=StructureWarnings(warning_count=len(structure), details=structure),
        classification_warnings=ClassificationWarnings(count=len(warnings), details=warnings),
        processed_at=datetime.now(timezone.utc).isoformat(),
    )

def open_norm_table(session: Session, norm_table: Optional[NormTable] = None) -> Optional[NormTable]:
    """
    Refresh the remote norm; if it has never loaded, fall back to the norms
    already stored in the database. None when neither is available.
    """
    if norm_table is None:
        norm_table = NormTable()
    try:
        norm_table.refresh()
        return norm_table
    except NormLoadError as e:
        stored = load_norm_entries(session)
        if stored:
            log.warning("Norm source unavailable (%s); using %d stored norms", e, len(stored))
            return NormTable.from_entries(stored)
        log.error("Norm source unavailable and no stored norms: %s", e)
        return None

def write_report(report: BatchReport, path: str | Path = BATCH_REPORT) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    log.info("Saved batch report: %s", path)
    return path

def run_etl(source: str | Path, norm_table: Optional[NormTable] = None,
            report_path: str | Path | None = BATCH_REPORT) -> BatchReport:
    """Execute the complete pipeline for one export file."""
    engine = create_tables(get_engine())
    Session = get_session_factory(engine)
    try:
        headers, rows = read_episodes(source)
        with Session() as session:
            table = open_norm_table(session, norm_table)
            report = ingest(rows, session, table, headers=headers)
        if report_path:
            write_report(report, report_path)
        return report
    except Exception as e:
        log.error("ETL pipeline failed: %s", e, exc_info=True)
        raise
