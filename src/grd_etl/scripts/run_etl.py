"""
CLI wrapper for the GRD ETL pipeline.
Run with:
    python -m grd_etl.scripts.run_etl data/raw/Base_GRD.csv
Or directly:
    python src/grd_etl/scripts/run_etl.py
"""
import argparse
import logging
from grd_etl.core.config import BATCH_REPORT, EPISODES_FILE
from grd_etl.core.logging_setup import setup_logging
from grd_etl.services.etl import run_etl


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Load a GRD export (CSV or Excel) into the episode database")
    parser.add_argument("source", nargs="?", default=str(EPISODES_FILE), help="export file to ingest")
    parser.add_argument("--report", default=str(BATCH_REPORT), help="where to write the batch report JSON")
    parser.add_argument("--log-level", default=None, help="overrides LOG_LEVEL")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    log = logging.getLogger(__name__)

    log.info("Starting GRD ETL Pipeline: %s", args.source)
    report = run_etl(args.source, report_path=args.report)

    log.info("Pipeline complete: total=%d valid=%d invalid=%d duplicates=%d warnings=%d",
             report.total_rows, report.valid_rows, report.invalid_rows,
             report.duplicates.count, report.classification_warnings.count)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
