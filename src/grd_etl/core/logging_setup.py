import logging
import logging.handlers
from pathlib import Path
from grd_etl.core.config import LOG_FILE, LOG_LEVEL, LOGS_DIR

DEFAULT_FMT = "%(asctime)s - %(levelname)-5s - %(name)s - %(message)s"
DATE_FMT = "%Y-%m-%d %H:%M:%S"

# third-party loggers kept at WARNING unless we run at DEBUG
NOISY_LOGGERS = ("urllib3", "sqlalchemy.engine")

def _with_format(handler: logging.Handler) -> logging.Handler:
    handler.setFormatter(logging.Formatter(DEFAULT_FMT, datefmt=DATE_FMT))
    return handler

def setup_logging(level: str | None = None, file_name: str = LOG_FILE) -> None:
    """Console plus a rotating file under LOGS_DIR. Safe to call more than once."""
    if getattr(setup_logging, "_configured", False):
        return
    level = (level or LOG_LEVEL).upper()
    logs_dir = Path(LOGS_DIR)
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(_with_format(logging.StreamHandler()))
    root.addHandler(_with_format(logging.handlers.RotatingFileHandler(
        logs_dir / file_name, maxBytes=5_000_000, backupCount=5, encoding="utf-8"
    )))

    if level != "DEBUG":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    setup_logging._configured = True
