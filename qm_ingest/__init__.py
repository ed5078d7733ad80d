"""Ingestion and outcome classification for call-center QM spreadsheets."""

__version__ = "0.1.0"

from qm_ingest.cells import Coded, Empty, Numeric, normalize_cell, parse_number  # noqa: E402
from qm_ingest.classify import NEGATIVE, OFFEN, POSITIVE, classify_outcome, normalize_outcome  # noqa: E402
from qm_ingest.errors import (  # noqa: E402
    ConfigError,
    NetworkError,
    NoSheetError,
    NotFoundError,
    QmIngestError,
    WorkbookError,
)
from qm_ingest.fetcher import fetch_source  # noqa: E402
from qm_ingest.models import CampaignCategories, QmDailyCell, QmRow  # noqa: E402
from qm_ingest.rows import load_qm_rows, normalize_row, parse_qm_sheet, parse_qm_workbook  # noqa: E402
from qm_ingest.sheets import read_sheet_names, read_sheet_rows, select_sheet  # noqa: E402

__all__ = [
    "__version__",
    "CampaignCategories",
    "Coded",
    "ConfigError",
    "Empty",
    "NEGATIVE",
    "NetworkError",
    "NoSheetError",
    "NotFoundError",
    "Numeric",
    "OFFEN",
    "POSITIVE",
    "QmDailyCell",
    "QmIngestError",
    "QmRow",
    "WorkbookError",
    "classify_outcome",
    "fetch_source",
    "load_qm_rows",
    "normalize_cell",
    "normalize_outcome",
    "normalize_row",
    "parse_number",
    "parse_qm_sheet",
    "parse_qm_workbook",
    "read_sheet_names",
    "read_sheet_rows",
    "select_sheet",
]
