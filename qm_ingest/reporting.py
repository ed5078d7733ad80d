"""Derived figures and tabular exports for normalized QM rows."""

from __future__ import annotations

from typing import Any, Iterable, Optional

import pandas as pd

from qm_ingest.models import DAYS_IN_ROW, QmRow

BAND_MET = "met"
BAND_NEAR = "near"
BAND_BEHIND = "behind"
NEAR_THRESHOLD = 80.0

SUMMARY_COLUMNS = [
    "sheet",
    "projectName",
    "agentName",
    "targetSoll",
    "achievedSum",
    "perfScore",
    "attainmentProvided",
    "attainmentPct",
    "notes",
]


def attainment_pct(row: QmRow) -> Optional[float]:
    if row.target_soll is None or row.target_soll <= 0:
        return None
    return row.achieved_sum / row.target_soll * 100


def attainment_band(pct: Optional[float]) -> Optional[str]:
    if pct is None:
        return None
    if pct >= 100:
        return BAND_MET
    if pct >= NEAR_THRESHOLD:
        return BAND_NEAR
    return BAND_BEHIND


def filter_rows(
    rows: Iterable[QmRow],
    agent: Optional[str] = None,
    project: Optional[str] = None,
) -> list[QmRow]:
    agent_key = (agent or "").lower()
    project_key = (project or "").lower()
    return [
        row
        for row in rows
        if agent_key in row.agent_name.lower() and project_key in row.project_name.lower()
    ]


def rows_to_json(rows: Iterable[QmRow]) -> list[dict[str, Any]]:
    return [row.to_dict() for row in rows]


def _daily_display(cell) -> Any:
    if cell.value is not None:
        return cell.value
    return cell.code


def rows_to_frame(rows: Iterable[QmRow]) -> pd.DataFrame:
    """One line per row: summary columns, then day columns "1".."31"."""
    records = []
    for row in rows:
        pct = attainment_pct(row)
        record = {
            "sheet": row.sheet,
            "projectName": row.project_name,
            "agentName": row.agent_name,
            "targetSoll": row.target_soll,
            "achievedSum": row.achieved_sum,
            "perfScore": row.perf_score,
            "attainmentProvided": row.attainment_provided,
            "attainmentPct": pct,
            "notes": row.notes,
        }
        for cell in row.daily:
            record[str(cell.day)] = _daily_display(cell)
        records.append(record)
    day_columns = [str(day) for day in range(1, DAYS_IN_ROW + 1)]
    return pd.DataFrame.from_records(records, columns=SUMMARY_COLUMNS + day_columns)


def project_totals(rows: Iterable[QmRow]) -> pd.DataFrame:
    """Target and achieved totals per project, with attainment where a target exists."""
    frame = rows_to_frame(rows)
    if frame.empty:
        return pd.DataFrame(columns=["projectName", "agents", "targetSoll", "achievedSum", "attainmentPct"])

    frame["targetSoll"] = pd.to_numeric(frame["targetSoll"])
    totals = (
        frame.groupby("projectName", sort=True)
        .agg(
            agents=("agentName", "nunique"),
            targetSoll=("targetSoll", lambda values: values.sum(min_count=1)),
            achievedSum=("achievedSum", "sum"),
        )
        .reset_index()
    )
    target = totals["targetSoll"].where(totals["targetSoll"] > 0)
    totals["attainmentPct"] = totals["achievedSum"] / target * 100
    return totals
