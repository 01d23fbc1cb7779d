from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from .types import FaultCode


@dataclass(frozen=True, slots=True)
class ParseError(Exception):
    """A cell that could not be converted, with the classified reason."""
    code: FaultCode             # classifies the conversion failure
    detail: str                 # human readable reason, no field/row context


# spreadsheet serial dates count days from this epoch (1900 leap-year bug included)
SPREADSHEET_EPOCH = datetime(1899, 12, 30)

TRUTHY = frozenset({"1", "yes", "是", "有"})
FALSY = frozenset({"0", "no", "否", "无"})

_DATE_PATTERNS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y%m%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    # invariant-culture month-first forms
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %I:%M:%S %p",
)

# larger magnitudes do not fit a 64-bit integer column
_INT_MAX_ADJUSTED = 18


def normalize_cell(v: Any) -> Any:
    """Trim strings, collapse empty strings to `None`. Other values unchanged."""
    if v is None:
        return None
    if isinstance(v, str):
        s = v.strip()
        return s if s else None
    return v


def is_blank(v: Any) -> bool:
    return normalize_cell(v) is None


## -- numerics

def _numeric_text(v: Any) -> str:
    """Invariant numeric text: thousands separators and whitespace removed."""
    return str(v).strip().replace(",", "").replace("_", "").replace(" ", "")


def _integral(d: Decimal, v: Any) -> int:
    """`d` as an `int`. The magnitude is checked before any digits are expanded."""
    if not d.is_finite() or d.adjusted() > _INT_MAX_ADJUSTED:
        raise ParseError(FaultCode.invalid_int, f"int value out of range {v!r}")
    if d != d.to_integral_value():
        raise ParseError(FaultCode.invalid_int, f"non-integer value {v!r}")
    return int(d)


def parse_int(v: Any) -> int:
    """Parse integers. Integral floats are accepted, fractional input is not."""
    if isinstance(v, bool):
        return int(v)
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        if v != v or v in (float("inf"), float("-inf")):
            raise ParseError(FaultCode.invalid_int, f"non-integer value {v!r}")
        return _integral(Decimal(repr(v)), v)
    if isinstance(v, Decimal):
        return _integral(v, v)
    s = _numeric_text(v)
    try:
        # "12.3" or "1e-4" should fail, not be sneakily coerced to `int`
        if ("." in s) or ("e" in s.lower()):
            return _integral(Decimal(s), v)
        return int(s)
    except (ValueError, InvalidOperation, OverflowError):
        raise ParseError(FaultCode.invalid_int, f"invalid int value {v!r}")


def parse_float(v: Any) -> float:
    if isinstance(v, (int, float, Decimal)) and not isinstance(v, bool):
        return float(v)
    try:
        return float(_numeric_text(v))
    except ValueError:
        raise ParseError(FaultCode.invalid_numeric, f"invalid numeric value {v!r}")


def parse_decimal(v: Any) -> Decimal:
    if isinstance(v, Decimal):
        return v
    if isinstance(v, float):
        # repr keeps the shortest round-tripping digits (0.1 stays 0.1)
        return Decimal(repr(v))
    try:
        d = Decimal(_numeric_text(v))
    except (InvalidOperation, ValueError):
        raise ParseError(FaultCode.invalid_numeric, f"invalid numeric value {v!r}")
    if not d.is_finite():
        raise ParseError(FaultCode.invalid_numeric, f"non-finite numeric value {v!r}")
    return d


## -- booleans

def parse_bool(v: Any) -> bool:
    """
    Literal bools pass, numbers are non-zero = true, then the fixed bilingual
    token sets, then plain `true`/`false`.
    """
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float, Decimal)):
        return v != 0
    s = str(v).strip().lower()
    if s in TRUTHY:
        return True
    if s in FALSY:
        return False
    if s == "true":
        return True
    if s == "false":
        return False
    raise ParseError(FaultCode.invalid_bool, f"invalid boolean {v!r}")


## -- dates

def from_spreadsheet_serial(v: float) -> datetime:
    try:
        return SPREADSHEET_EPOCH + timedelta(days=float(v))
    except (OverflowError, ValueError):
        raise ParseError(FaultCode.invalid_timestamp, f"spreadsheet serial date out of range: {v!r}")


def parse_datetime(v: Any, *, format_pattern: str | None = None) -> datetime:
    """
    Order:
    - numeric spreadsheet serial,
    - ISO-8601 (`Z` suffix and space separator accepted),
    - the fixed year-first patterns,
    - `format_pattern` when given.
    """
    if isinstance(v, datetime):
        return v
    if isinstance(v, date):
        return datetime(v.year, v.month, v.day)
    if isinstance(v, (int, float, Decimal)) and not isinstance(v, bool):
        return from_spreadsheet_serial(float(v))

    s = str(v).strip()
    iso = s.replace("Z", "+00:00").replace(" ", "T", 1)
    try:
        return datetime.fromisoformat(iso)
    except ValueError:
        pass

    for pattern in _DATE_PATTERNS:
        try:
            return datetime.strptime(s, pattern)
        except ValueError:
            continue

    if format_pattern:
        try:
            return datetime.strptime(s, format_pattern)
        except ValueError:
            raise ParseError(
                FaultCode.invalid_timestamp, f"invalid timestamp {v!r} (expected pattern {format_pattern!r})"
            )

    raise ParseError(FaultCode.invalid_timestamp, f"invalid timestamp {v!r}")


def parse_date(v: Any, *, format_pattern: str | None = None) -> date:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    return parse_datetime(v, format_pattern=format_pattern).date()


## -- identifiers and enums

def parse_uuid(v: Any) -> uuid.UUID:
    if isinstance(v, uuid.UUID):
        return v
    try:
        return uuid.UUID(str(v).strip())
    except ValueError:
        raise ParseError(FaultCode.invalid_uuid, f"invalid uuid {v!r}")


def parse_enum(v: Any, enum_type: type[Enum]) -> Enum:
    """Member name (case-insensitive) first, then member value."""
    if isinstance(v, enum_type):
        return v
    s = str(v).strip()
    lowered = s.lower()
    for member in enum_type:
        if member.name.lower() == lowered:
            return member
    for member in enum_type:
        if str(member.value).lower() == lowered:
            return member
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        try:
            return enum_type(int(v))
        except ValueError:
            pass
    raise ParseError(FaultCode.invalid_enum, f"{s!r} is not a member of {enum_type.__name__}")


## -- text

def parse_text(v: Any) -> str:
    """Text form of a cell. Integral floats drop the trailing `.0` spreadsheets add."""
    if isinstance(v, str):
        return v.strip()
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)
