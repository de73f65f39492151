"""
Fetch the Norma MINSAL and store it in grd_norms (upsert by GRD code).
Run with:
    python -m grd_etl.scripts.load_norm [URL or path] [--sheet "Normas (4)"]
"""
import argparse
import logging
from grd_etl.core.config import NORM_SHEET_NAME, NORM_SOURCE
from grd_etl.core.db import create_tables, get_session_factory
from grd_etl.core.errors import NormLoadError
from grd_etl.core.logging_setup import setup_logging
from grd_etl.extract.extract_norm import load_norm
from grd_etl.load.load_to_db import upsert_norm_entries


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Load the Norma MINSAL into the database")
    parser.add_argument("source", nargs="?", default=NORM_SOURCE, help="workbook URL, Excel or CSV path")
    parser.add_argument("--sheet", default=NORM_SHEET_NAME)
    args = parser.parse_args(argv)

    setup_logging()
    log = logging.getLogger(__name__)

    try:
        entries = load_norm(args.source, sheet_name=args.sheet)
    except NormLoadError as e:
        log.error("Could not load norm: %s", e)
        return 1

    engine = create_tables()
    with get_session_factory(engine)() as session:
        count = upsert_norm_entries(session, entries.values())
    log.info("Stored %d GRD norms from %s", count, args.source)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
