"""Configuration constants and environment bootstrap utilities."""

from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv  # type: ignore[import-not-found]

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent
ENV_PATH = PROJECT_ROOT / ".env"

REPORT_TIMEOUT = 30  # seconds
EXPORT_TIMEOUT = 30  # seconds
FETCH_WORKERS = 4
DEFAULT_MAX_PAGE_NUMBER = 4

CSV_EXPORT_URL = "/teachers/progress_reports/csv_exports"

ALL_CLASSROOMS_LABEL = "All Classrooms"
ALL_STUDENTS_LABEL = "All Students"
ALL_UNITS_LABEL = "All Units"


def load_environment() -> None:
    """Load variables from the optional project-level ``.env`` file."""
    if ENV_PATH.exists():
        load_dotenv(dotenv_path=ENV_PATH)
    else:
        logging.getLogger(__name__).warning("Missing .env file at %s", ENV_PATH)
