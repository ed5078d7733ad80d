"""Shared versioned contracts for qm-ingest JSON outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

CONTRACT_VERSIONS = {
    "qm_ingest.rows": "1.0.0",
    "qm_ingest.sheets": "1.0.0",
    "qm_ingest.classification": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    command: str,
    source: str | None,
    status: str = "ok",
    sheet_name: str | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "qm-ingest",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "source": source,
        "sheet_name": sheet_name,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }
