"""Row normalization and the end-to-end QM workbook pipeline."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from qm_ingest.cells import Numeric, cell_text, is_blank, normalize_cell, parse_number
from qm_ingest.config import IngestSettings
from qm_ingest.fetcher import fetch_source, is_remote_source
from qm_ingest.models import DAYS_IN_ROW, QmDailyCell, QmRow
from qm_ingest.sheets import header_key, read_sheet_names, read_sheet_rows, select_sheet

logger = logging.getLogger(__name__)

COL_PROJECT = "Projekt"
COL_AGENT = "Agent"
COL_TARGET = "Soll"
COL_PERF = "Perf"
COL_NOTES = "Notizen"
# The source sheets carry the supplied attainment under a header that is a
# single space.
COL_ATTAINMENT = " "


def fold_headers(raw_row: Mapping[Any, Any]) -> dict[str, Any]:
    """
    Key ``raw_row`` by lowercased header text.

    Sheets sometimes carry the same column twice in different letter case
    ("Projekt" and "projekt"). The first non-blank value in column order wins;
    a blank variant never hides a filled one.
    """
    folded: dict[str, Any] = {}
    for key, value in raw_row.items():
        name = header_key(key).lower()
        if name not in folded or is_blank(folded[name]):
            folded[name] = value
    return folded


def _text_or_none(value: Any) -> Optional[str]:
    if is_blank(value):
        return None
    text = cell_text(value)
    return text or None


def normalize_row(raw_row: Mapping[Any, Any], sheet_name: str) -> Optional[QmRow]:
    """Turn one ``{header: value}`` row into a QmRow, or None if it names nobody."""
    row = fold_headers(raw_row)

    project = _text_or_none(row.get(COL_PROJECT.lower())) or ""
    agent = _text_or_none(row.get(COL_AGENT.lower())) or ""
    if not project and not agent:
        return None

    daily: list[QmDailyCell] = []
    achieved_sum = 0.0
    for day in range(1, DAYS_IN_ROW + 1):
        parsed = normalize_cell(row.get(str(day)))
        daily.append(QmDailyCell.from_parsed(day, parsed))
        if isinstance(parsed, Numeric):
            achieved_sum += parsed.value

    return QmRow(
        sheet=sheet_name,
        project_name=project,
        agent_name=agent,
        target_soll=parse_number(row.get(COL_TARGET.lower())),
        perf_score=parse_number(row.get(COL_PERF.lower())),
        attainment_provided=parse_number(row.get(COL_ATTAINMENT)),
        achieved_sum=achieved_sum,
        notes=_text_or_none(row.get(COL_NOTES.lower())),
        daily=tuple(daily),
    )


def normalize_rows(raw_rows, sheet_name: str) -> list[QmRow]:
    normalized: list[QmRow] = []
    dropped = 0
    for raw_row in raw_rows:
        qm_row = normalize_row(raw_row, sheet_name)
        if qm_row is None:
            dropped += 1
            continue
        normalized.append(qm_row)
    if dropped:
        logger.debug("Dropped %d row(s) without project or agent in sheet %r", dropped, sheet_name)
    return normalized


def load_qm_rows(path: "str | Path", sheet_name: str) -> list[QmRow]:
    return normalize_rows(read_sheet_rows(path, sheet_name), sheet_name)


def parse_qm_sheet(
    source: "str | Path",
    *,
    month: Optional[str] = None,
    sheet: Optional[str] = None,
    cookie: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
    settings: Optional[IngestSettings] = None,
    session=None,
) -> tuple[str, list[QmRow]]:
    """
    Fetch ``source``, pick the QM sheet and return ``(sheet name, rows)``.

    The sheet name is returned even when no row survives normalization.

    Args:
        source:   local path or http(s) URL of the workbook.
        month:    "YYYY-MM"; selects the "Abschlüsse MM.YYYY" sheet.
        sheet:    explicit sheet name; wins over ``month``.
        cookie:   Cookie header for gated document stores.
        headers:  extra request headers.
        settings: timeouts, redirect cap, size cap; defaults to the environment.

    Raises:
        NetworkError, NotFoundError, NoSheetError, WorkbookError
    """
    settings = settings or IngestSettings.from_env()
    request_headers = settings.request_headers(headers)
    if cookie:
        request_headers["Cookie"] = cookie

    path = fetch_source(
        source,
        request_headers,
        session=session,
        max_redirects=settings.max_redirects,
        timeout=settings.timeout,
        max_bytes=settings.max_download_bytes,
    )
    downloaded = is_remote_source(source)
    try:
        target_sheet = select_sheet(read_sheet_names(path), sheet=sheet, month=month)
        logger.info("Reading QM sheet %r from %s", target_sheet, source)
        return target_sheet, load_qm_rows(path, target_sheet)
    finally:
        if downloaded:
            path.unlink(missing_ok=True)


def parse_qm_workbook(
    source: "str | Path",
    *,
    month: Optional[str] = None,
    sheet: Optional[str] = None,
    cookie: Optional[str] = None,
    headers: Optional[Mapping[str, str]] = None,
    settings: Optional[IngestSettings] = None,
    session=None,
) -> list[QmRow]:
    """Normalized rows of the selected QM sheet; arguments as for ``parse_qm_sheet``."""
    _, rows = parse_qm_sheet(
        source,
        month=month,
        sheet=sheet,
        cookie=cookie,
        headers=headers,
        settings=settings,
        session=session,
    )
    return rows
