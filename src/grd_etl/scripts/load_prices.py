"""
Store agreement (convenio) base prices and reprice the affected episodes.
Run with:
    python -m grd_etl.scripts.load_prices data/raw/precios_convenios.csv
"""
import argparse
import logging
from grd_etl.core.db import create_tables, get_session_factory
from grd_etl.core.errors import GrdEtlError
from grd_etl.core.logging_setup import setup_logging
from grd_etl.extract.extract_prices import read_prices
from grd_etl.load.load_to_db import upsert_agreement_prices
from grd_etl.services.episodes import reprice_agreements


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Load agreement base prices into the database")
    parser.add_argument("source", help="CSV or Excel file with Convenio, Tramo, Precio columns")
    parser.add_argument("--no-reprice", action="store_true", help="store prices without repricing episodes")
    args = parser.parse_args(argv)

    setup_logging()
    log = logging.getLogger(__name__)

    try:
        prices = read_prices(args.source)
    except (GrdEtlError, OSError, ValueError) as e:
        log.error("Could not read prices: %s", e)
        return 1

    engine = create_tables()
    with get_session_factory(engine)() as session:
        upsert_agreement_prices(session, prices)
        if not args.no_reprice:
            reprice_agreements(session)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
