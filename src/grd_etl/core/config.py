
from pathlib import Path
import os
from dotenv import load_dotenv

load_dotenv()

# project paths
BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent
DATA_DIR   = BASE_DIR / "data"
RAW_DIR    = DATA_DIR / "raw"
LOGS_DIR   = DATA_DIR / "logs"

# input files
EPISODES_FILE = RAW_DIR / "Base_GRD.csv"
NORM_FILE     = RAW_DIR / "norma-minsal.xlsx"

# reports
BATCH_REPORT = LOGS_DIR / "batch_report.json"
QA_REPORT    = LOGS_DIR / "qa_report.json"

# Norma MINSAL
NORM_SOURCE = os.getenv("MINSAL_GRD_URL", str(NORM_FILE))
NORM_SHEET_NAME = os.getenv("MINSAL_GRD_SHEET", "Normas (4)")
NORM_REFRESH_HOURS = float(os.getenv("NORM_REFRESH_HOURS", os.getenv("MINSAL_REFRESH_HOURS", "24")))
NORM_TIMEOUT_SECONDS = float(os.getenv("MINSAL_GRD_TIMEOUT", "30"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE  = os.getenv("LOG_FILE", "grd_etl.log")

# Database
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME")

if os.getenv("DATABASE_URL"):
    DATABASE_URL = os.environ["DATABASE_URL"]
elif all([DB_USER, DB_PASSWORD, DB_NAME]):
    DATABASE_URL = f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
else:
    DATABASE_URL = f"sqlite:///{DATA_DIR / 'grd.db'}"
