"""
Cell-to-field coercion.

`coerce` never raises. A value that cannot be converted falls back to the
target type's zero value and the fallback is reported as a fault message,
so the row can keep materializing while the caller still sees the problem.
"""

from __future__ import annotations

import types
import typing
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, NamedTuple, Union

from .primitives import (
    ParseError,
    normalize_cell,
    parse_bool,
    parse_date,
    parse_datetime,
    parse_decimal,
    parse_enum,
    parse_float,
    parse_int,
    parse_text,
    parse_uuid,
)
from .types import FaultCode

Converter = Callable[[Any, "str | None"], Any]


class Coerced(NamedTuple):
    value: Any
    fault: str | None = None
    code: FaultCode | None = None


@dataclass(frozen=True, slots=True)
class TargetType:
    """A declared field type split into its concrete type and nullability."""
    base: Any                   # concrete type, or `Any`
    nullable: bool


def unwrap_optional(tp: Any) -> TargetType:
    """`Optional[X]` / `X | None` -> (X, nullable). `Any` and `object` are nullable."""
    if tp is Any or tp is object or tp is None:
        return TargetType(Any, True)
    origin = typing.get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        nullable = len(args) != len(typing.get_args(tp))
        base = args[0] if len(args) == 1 else Any
        return TargetType(base, nullable or base is Any)
    if origin is not None:
        # list[str], dict[str, Any] ... -> the runtime container type
        return TargetType(origin, False)
    return TargetType(tp, False)


def zero_value(tp: Any) -> Any:
    """The value a field receives when its cell is empty or unconvertible."""
    target = unwrap_optional(tp)
    if target.nullable:
        return None
    base = target.base
    if base is bool:
        return False
    if base is int:
        return 0
    if base is float:
        return 0.0
    if base is Decimal:
        return Decimal(0)
    if base is str:
        return ""
    if base is datetime:
        return datetime.min
    if base is date:
        return date.min
    if base is uuid.UUID:
        return uuid.UUID(int=0)
    if isinstance(base, type) and issubclass(base, Enum):
        return next(iter(base), None)
    try:
        return base()
    except Exception:
        return None


def _is_assignable(raw: Any, base: Any) -> bool:
    if not isinstance(base, type):
        return False
    if base is int and isinstance(raw, bool):
        return False
    if base is date and isinstance(raw, datetime):
        return False
    return isinstance(raw, base)


def _build_converter(base: Any) -> Converter:
    """Pick the per-type conversion once; results are cached by `_converter_for`."""
    if isinstance(base, type) and issubclass(base, Enum):
        return lambda v, _fmt: parse_enum(v, base)
    if base is uuid.UUID:
        return lambda v, _fmt: parse_uuid(v)
    if base is datetime:
        return lambda v, fmt: parse_datetime(v, format_pattern=fmt)
    if base is date:
        return lambda v, fmt: parse_date(v, format_pattern=fmt)
    if base is bool:
        return lambda v, _fmt: parse_bool(v)
    if base is int:
        return lambda v, _fmt: parse_int(v)
    if base is float:
        return lambda v, _fmt: parse_float(v)
    if base is Decimal:
        return lambda v, _fmt: parse_decimal(v)
    if base is str:
        return lambda v, _fmt: parse_text(v)

    def _generic(v: Any, _fmt: str | None) -> Any:
        # universal conversion, then construction from the text form
        try:
            return base(v)
        except Exception:
            pass
        try:
            return base(parse_text(v))
        except Exception as e:
            raise ParseError(FaultCode.invalid_value, f"cannot build {getattr(base, '__name__', base)}: {e}")

    return _generic


_CONVERTERS: dict[Any, Converter] = {}


def _converter_for(base: Any) -> Converter:
    conv = _CONVERTERS.get(base)
    if conv is None:
        conv = _CONVERTERS.setdefault(base, _build_converter(base))
    return conv


def coerce(
    raw: Any,
    target_type: Any,
    *,
    field: str,
    row_index: int,
    format_pattern: str | None = None,
) -> Coerced:
    """
    Convert one raw cell into `target_type`.

    Policy, in order:
    1. empty -> zero value (no fault),
    2. already the right type -> pass through,
    3. per-type conversion (enum, uuid, date/datetime, bool, numerics, text),
    4. generic constructor fallback,
    5. zero value + fault.
    """
    target = unwrap_optional(target_type)
    value = normalize_cell(raw)

    if value is None:
        return Coerced(zero_value(target_type))

    if target.base is Any:
        return Coerced(value)

    if _is_assignable(value, target.base):
        return Coerced(value)

    try:
        return Coerced(_converter_for(target.base)(value, format_pattern))
    except ParseError as e:
        return Coerced(
            zero_value(target_type),
            f"{field}: row {row_index}: {e.detail} (raw type {type(raw).__name__})",
            e.code,
        )


# names accepted by `ColumnSpec.data_type`
TYPE_NAMES: dict[str, Any] = {
    "str": Any,
    "string": Any,
    "text": Any,
    "int": int,
    "integer": int,
    "long": int,
    "float": float,
    "double": float,
    "decimal": Decimal,
    "bool": bool,
    "boolean": bool,
    "date": date,
    "datetime": datetime,
    "uuid": uuid.UUID,
    "guid": uuid.UUID,
}


def type_from_name(name: str | None) -> Any:
    """Declared type for a dynamic column. Unknown names raise `KeyError`."""
    if not name:
        return Any
    return TYPE_NAMES[name.strip().lower()]
