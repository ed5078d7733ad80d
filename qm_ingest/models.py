"""Canonical records produced by the QM pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from qm_ingest.cells import Coded, Numeric, ParsedCell

DAYS_IN_ROW = 31


@dataclass(frozen=True)
class QmDailyCell:
    day: int
    value: Optional[float] = None
    code: Optional[str] = None

    def __post_init__(self) -> None:
        if not 1 <= self.day <= DAYS_IN_ROW:
            raise ValueError(f"day must be between 1 and {DAYS_IN_ROW}, got {self.day}")
        if self.value is not None and self.code is not None:
            raise ValueError("a daily cell holds either a value or a code, not both")

    @classmethod
    def from_parsed(cls, day: int, parsed: ParsedCell) -> "QmDailyCell":
        if isinstance(parsed, Numeric):
            return cls(day=day, value=parsed.value)
        if isinstance(parsed, Coded):
            return cls(day=day, code=parsed.code)
        return cls(day=day)

    @property
    def is_blank(self) -> bool:
        return self.value is None and self.code is None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"day": self.day}
        if self.value is not None:
            payload["value"] = self.value
        if self.code is not None:
            payload["code"] = self.code
        return payload


@dataclass(frozen=True)
class QmRow:
    """One agent/project line of a QM sheet for one reporting month."""

    sheet: str
    project_name: str
    agent_name: str
    target_soll: Optional[float]
    perf_score: Optional[float]
    attainment_provided: Optional[float]
    achieved_sum: float
    notes: Optional[str]
    daily: tuple[QmDailyCell, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not (self.project_name or self.agent_name):
            raise ValueError("a QM row needs a project name or an agent name")
        days = [cell.day for cell in self.daily]
        if days != list(range(1, DAYS_IN_ROW + 1)):
            raise ValueError(f"daily must hold days 1..{DAYS_IN_ROW} in order")

    def to_dict(self) -> dict[str, Any]:
        return {
            "sheet": self.sheet,
            "projectName": self.project_name,
            "agentName": self.agent_name,
            "targetSoll": self.target_soll,
            "perfScore": self.perf_score,
            "attainmentProvided": self.attainment_provided,
            "achievedSum": self.achieved_sum,
            "notes": self.notes,
            "daily": [cell.to_dict() for cell in self.daily],
        }


def normalize_outcome(label: Any) -> str:
    """Outcome label comparison key: trimmed, lowercased, spaces as underscores."""
    if label is None:
        return ""
    return str(label).strip().lower().replace(" ", "_")


def _normalized_labels(labels: Iterable[str]) -> frozenset[str]:
    return frozenset(normalize_outcome(label) for label in labels)


@dataclass(frozen=True)
class CampaignCategories:
    """Outcome labels a campaign files under open / success / declined."""

    open: tuple[str, ...] = ()
    success: tuple[str, ...] = ()
    declined: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "_open_keys", _normalized_labels(self.open))
        object.__setattr__(self, "_success_keys", _normalized_labels(self.success))
        object.__setattr__(self, "_declined_keys", _normalized_labels(self.declined))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CampaignCategories":
        def labels(key: str) -> tuple[str, ...]:
            values = payload.get(key) or []
            if isinstance(values, str):
                values = [values]
            return tuple(str(value) for value in values if value is not None)

        return cls(open=labels("open"), success=labels("success"), declined=labels("declined"))

    @property
    def open_keys(self) -> frozenset[str]:
        return self._open_keys

    @property
    def success_keys(self) -> frozenset[str]:
        return self._success_keys

    @property
    def declined_keys(self) -> frozenset[str]:
        return self._declined_keys

    def to_dict(self) -> dict[str, list[str]]:
        return {"open": list(self.open), "success": list(self.success), "declined": list(self.declined)}
