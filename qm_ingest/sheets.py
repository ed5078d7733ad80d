"""
sheets.py — worksheet selection and row extraction for QM workbooks

Public API:
    names = read_sheet_names(path)
    name  = select_sheet(names, month="2025-10")
    rows  = read_sheet_rows(path, name)

Supported inputs: .xlsx .xlsm (openpyxl), .xls (xlrd), .ods (odfpy), and
.csv exports, which are treated as a single sheet named after the file.

Sheet selection order (first match wins):
    1. explicit sheet name, exact match
    2. month hint "YYYY-MM" -> "Abschlüsse MM.YYYY", exact then substring
    3. first sheet whose name matches absch|abschluss|abschlüsse
    4. last sheet (sheets are kept in chronological order, newest last)
"""

from __future__ import annotations

import csv
import io
import logging
import math
import re
from pathlib import Path
from typing import Any, Optional, Sequence

from qm_ingest.errors import NoSheetError, WorkbookError

logger = logging.getLogger(__name__)

CLOSINGS_SHEET_RE = re.compile(r"absch|abschluss|abschlüsse", re.IGNORECASE)
MONTH_RE = re.compile(r"^\s*(\d{4})-(\d{1,2})\s*$")
CLOSINGS_PREFIX = "Abschlüsse"

CSV_FORMATS = {".csv"}
ODS_FORMATS = {".ods"}
LEGACY_EXCEL_FORMATS = {".xls"}


# ══════════════════════════════════════════════════════════════════════════════
# SHEET SELECTION
# ══════════════════════════════════════════════════════════════════════════════

def month_pattern(month: str) -> str:
    """Return the sheet name used for ``month`` ("2024-4" -> "Abschlüsse 04.2024")."""
    match = MONTH_RE.match(month or "")
    if not match:
        raise ValueError(f"Month must look like YYYY-MM, got {month!r}")
    year, month_num = match.group(1), int(match.group(2))
    if not 1 <= month_num <= 12:
        raise ValueError(f"Month out of range in {month!r}")
    return f"{CLOSINGS_PREFIX} {month_num:02d}.{year}"


def select_sheet(
    sheet_names: Sequence[str],
    *,
    sheet: Optional[str] = None,
    month: Optional[str] = None,
) -> str:
    names = list(sheet_names)
    if not names:
        raise NoSheetError("No suitable QM sheet found in workbook (it has no worksheets)")

    if sheet:
        if sheet in names:
            return sheet
        logger.warning("Sheet %r not in workbook; falling back to heuristics. Available: %s", sheet, names)
    elif month:
        try:
            pattern = month_pattern(month)
        except ValueError as exc:
            logger.warning("Ignoring month hint: %s", exc)
        else:
            if pattern in names:
                return pattern
            for name in names:
                if pattern in name:
                    return name
            logger.debug("No sheet for %r; falling back to heuristics", pattern)

    for name in names:
        if CLOSINGS_SHEET_RE.search(name):
            return name

    logger.debug("No closings sheet found; using last sheet %r", names[-1])
    return names[-1]


# ══════════════════════════════════════════════════════════════════════════════
# CSV EXPORTS
# ══════════════════════════════════════════════════════════════════════════════

def _decode_text(raw: bytes) -> str:
    """Decode CSV bytes: UTF-8 first, then the chardet guess, then cp1252."""
    import chardet

    detected = chardet.detect(raw).get("encoding") or "utf-8"
    for enc in ("utf-8-sig", detected):
        try:
            return raw.decode(enc).replace("\x00", "")
        except (LookupError, UnicodeDecodeError):
            continue
    return raw.decode("cp1252", errors="replace")


def _detect_delimiter(text: str) -> str:
    sample = "\n".join([line for line in text.splitlines() if line.strip()][:25])
    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=";,\t|").delimiter
        except csv.Error:
            pass
    return ";"


def _read_csv_rows(path: Path) -> list[dict[str, Any]]:
    text = _decode_text(path.read_bytes())
    reader = csv.reader(io.StringIO(text), delimiter=_detect_delimiter(text))
    table = [row for row in reader if any(cell.strip() for cell in row)]
    if not table:
        return []
    header = table[0]
    return [
        {header[i]: (cell if cell != "" else None) for i, cell in enumerate(row) if i < len(header)}
        for row in table[1:]
    ]


# ══════════════════════════════════════════════════════════════════════════════
# WORKBOOKS
# ══════════════════════════════════════════════════════════════════════════════

def _engine_for(path: Path) -> Optional[str]:
    suffix = path.suffix.lower()
    if suffix in LEGACY_EXCEL_FORMATS:
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd — run: pip install xlrd")
        return "xlrd"
    if suffix in ODS_FORMATS:
        try:
            import odf  # noqa: F401
        except ImportError:
            raise ImportError(".ods files require odfpy — run: pip install odfpy")
        return "odf"
    return None


def header_key(label: Any) -> str:
    """Column label as text: 17 and 17.0 both become "17"; " " stays " "."""
    if isinstance(label, float) and label.is_integer():
        return str(int(label))
    return str(label)


def _clean_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if hasattr(value, "to_pydatetime"):
        return value.to_pydatetime()
    return value


def read_sheet_names(path: "str | Path") -> list[str]:
    path = Path(path)
    if path.suffix.lower() in CSV_FORMATS:
        return [path.stem]

    import pandas as pd

    engine = _engine_for(path)
    try:
        with pd.ExcelFile(path, engine=engine) as xf:
            return [str(name) for name in xf.sheet_names]
    except Exception as exc:
        raise WorkbookError(f"Could not open workbook: {exc}") from exc


def read_sheet_rows(path: "str | Path", sheet_name: str) -> list[dict[str, Any]]:
    """
    Read one worksheet as a list of ``{header: value}`` dicts.

    The first row is the header. Blank cells are None, fully blank rows are
    skipped, numbers keep their native type.
    """
    path = Path(path)
    if path.suffix.lower() in CSV_FORMATS:
        return _read_csv_rows(path)

    import pandas as pd

    engine = _engine_for(path)
    try:
        df = pd.read_excel(path, sheet_name=sheet_name, dtype=object, engine=engine)
    except Exception as exc:
        raise WorkbookError(f"Could not load sheet '{sheet_name}': {exc}") from exc

    df = df.dropna(how="all")
    columns = [header_key(label) for label in df.columns]
    rows: list[dict[str, Any]] = []
    for values in df.itertuples(index=False, name=None):
        rows.append({column: _clean_value(value) for column, value in zip(columns, values)})
    return rows
