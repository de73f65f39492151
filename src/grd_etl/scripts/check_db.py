"""
Check the database connection and run integrity checks on stored episodes.
Run with: python -m grd_etl.scripts.check_db
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from sqlalchemy import func, inspect, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from grd_etl.core.config import QA_REPORT
from grd_etl.core.db import get_engine
from grd_etl.core.logging_setup import setup_logging
from grd_etl.models import Episode, GrdNorm, Patient

log = logging.getLogger(__name__)


def table_counts(engine) -> dict[str, int]:
    counts = {}
    with engine.connect() as conn:
        for table in inspect(engine).get_table_names():
            counts[table] = conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar_one()
    return counts

def integrity_report(session: Session) -> dict:
    """Episodes with dangling references, repeated ids, or missing dates/facility."""
    orphan_patient = session.scalars(
        select(Episode.episode_cmbd)
        .outerjoin(Patient, Episode.patient_id == Patient.id)
        .where(Patient.id.is_(None))
    ).all()
    orphan_norm = session.scalars(
        select(Episode.episode_cmbd)
        .outerjoin(GrdNorm, Episode.norm_id == GrdNorm.id)
        .where(Episode.norm_id.is_not(None), GrdNorm.id.is_(None))
    ).all()
    duplicated = session.execute(
        select(Episode.episode_cmbd, func.count(Episode.id))
        .group_by(Episode.episode_cmbd)
        .having(func.count(Episode.id) > 1)
    ).all()
    missing_dates = session.scalars(
        select(Episode.episode_cmbd).where(
            (Episode.admission_dt.is_(None)) | (Episode.discharge_dt.is_(None))
        )
    ).all()
    missing_facility = session.scalars(
        select(Episode.episode_cmbd).where(
            (Episode.facility.is_(None)) | (func.trim(Episode.facility) == "")
        )
    ).all()
    unclassified = session.scalar(
        select(func.count(Episode.id)).where(Episode.stay_tag.is_(None))
    )

    return {
        "checked_at": datetime.now(timezone.utc).isoformat(),
        "episodes": session.scalar(select(func.count(Episode.id))),
        "dangling_patient": list(orphan_patient),
        "dangling_norm": list(orphan_norm),
        "duplicate_episodes": {code: n for code, n in duplicated},
        "missing_dates": list(missing_dates),
        "missing_facility": list(missing_facility),
        "unclassified": unclassified,
    }

def write_qa_report(report: dict, path=QA_REPORT) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def main():
    setup_logging()
    try:
        engine = get_engine()
        counts = table_counts(engine)

        print("Database Connection: SUCCESS\n")
        print("Tables in database:")
        if counts:
            for table, count in counts.items():
                print(f"  - {table}: {count} rows")
        else:
            print("  No tables found")
            return

        with Session(engine) as session:
            report = integrity_report(session)
        path = write_qa_report(report)

        print("\nIntegrity checks:")
        for key in ("dangling_patient", "dangling_norm", "duplicate_episodes", "missing_dates", "missing_facility"):
            print(f"  - {key}: {len(report[key])}")
        print(f"  - unclassified: {report['unclassified']}")
        print(f"\nQA report written to {path}")

    except SQLAlchemyError as e:
        log.error("Database check failed: %s", e)
        print("Database Connection: FAILED")
        print(f"Error: {e}")


if __name__ == "__main__":
    main()
