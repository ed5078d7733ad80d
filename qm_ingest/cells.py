"""
Cell normalization for QM daily columns.

Every raw spreadsheet cell maps to exactly one of three shapes:

    Empty()          blank cell (None, "", pandas NaN)
    Numeric(value)   native number or text holding a float literal
    Coded(code)      anything else, e.g. absence codes like "K", "U", "krank"

Number parsing is whole-string: "12abc" is a code, not 12. The accepted
syntax is a plain float literal (sign, digits, optional decimal point,
optional exponent). "nan", "inf", "1_000" and decimal commas ("7,5") are
codes. Daily sums only ever include cells that parsed completely.

Only a truly empty cell is Empty. A whitespace-only string is a non-empty
cell and becomes Coded(""), its trimmed text.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Optional, Union

FLOAT_LITERAL_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


@dataclass(frozen=True)
class Empty:
    pass


@dataclass(frozen=True)
class Numeric:
    value: float


@dataclass(frozen=True)
class Coded:
    code: str


ParsedCell = Union[Empty, Numeric, Coded]


def parse_number(text: Any) -> Optional[float]:
    """Parse ``text`` as a finite float literal, or return None."""
    if text is None:
        return None
    if isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        value = float(text)
        return value if math.isfinite(value) else None
    candidate = str(text).strip()
    if not FLOAT_LITERAL_RE.match(candidate):
        return None
    value = float(candidate)
    return value if math.isfinite(value) else None


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def normalize_cell(raw: Any) -> ParsedCell:
    if raw is None or (isinstance(raw, str) and not raw):
        return Empty()
    if isinstance(raw, float) and math.isnan(raw):
        return Empty()
    if isinstance(raw, bool):
        return Coded("TRUE" if raw else "FALSE")
    if isinstance(raw, (int, float)):
        value = float(raw)
        if math.isfinite(value):
            return Numeric(value)
        return Coded(str(raw))
    if isinstance(raw, (datetime, date, time)):
        return Coded(cell_text(raw))

    text = str(raw).strip()
    value = parse_number(text)
    if value is not None:
        return Numeric(value)
    return Coded(text)
