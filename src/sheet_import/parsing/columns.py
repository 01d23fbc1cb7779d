from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from sheet_import.errors import ConfigurationError

from .schema import ColumnSpec

logger = logging.getLogger(__name__)


def synthetic_column_name(position: int) -> str:
    """`Column1`, `Column2` ... for headerless sources and blank header cells (1-based)."""
    return f"Column{position}"


def normalize_headers(raw_headers: Sequence[Any]) -> list[str]:
    """
    Header cells as text. Blank cells get their positional synthetic name.

    Repeated headers (case-insensitive) become `Name_2`, `Name_3` ... so every
    column keeps its own key in row snapshots and the unmapped side map.
    """
    out: list[str] = []
    taken: set[str] = set()
    for i, h in enumerate(raw_headers, start=1):
        text = ("" if h is None else str(h).strip()) or synthetic_column_name(i)
        name, n = text, 1
        while name.lower() in taken:
            n += 1
            name = f"{text}_{n}"
        taken.add(name.lower())
        out.append(name)
    return out


@dataclass(frozen=True, slots=True)
class ColumnBinding:
    """One resolved mapping entry. `index` is `None` for default-only bindings."""
    spec: ColumnSpec
    index: int | None


@dataclass(frozen=True, slots=True)
class ColumnPlan:
    """Column resolution for one stream. Computed once, read for every row."""
    headers: tuple[str, ...]
    bindings: tuple[ColumnBinding, ...]
    missing: tuple[ColumnSpec, ...]         # entries with no matching header

    @property
    def consumed(self) -> frozenset[int]:
        return frozenset(b.index for b in self.bindings if b.index is not None)


def _find_index(headers: Sequence[str], name: str) -> int | None:
    wanted = name.lower()
    # (a) exact, case-insensitive
    for i, h in enumerate(headers):
        if h.lower() == wanted:
            return i
    # (b) trimmed on both sides, case-insensitive
    wanted = wanted.strip()
    for i, h in enumerate(headers):
        if h.strip().lower() == wanted:
            return i
    return None


def resolve_columns(
    headers: Sequence[str],
    specs: Sequence[ColumnSpec],
    *,
    strict_headers: bool = False,
) -> ColumnPlan:
    """
    Map every `ColumnSpec` onto a header position.

    Unresolved entries are reported and dropped, except when they carry a
    `default_value` (kept as a default-only binding). An unresolved required
    column is only fatal when `strict_headers` is set.
    """
    bindings: list[ColumnBinding] = []
    missing: list[ColumnSpec] = []

    for spec in specs:
        idx = _find_index(headers, spec.source_name)
        if idx is not None:
            bindings.append(ColumnBinding(spec=spec, index=idx))
            continue

        missing.append(spec)
        if spec.default_value is not None:
            bindings.append(ColumnBinding(spec=spec, index=None))

        if spec.required:
            logger.warning(
                "required column %r not found in headers; field %r will not be read from the source",
                spec.source_name,
                spec.target_field,
                extra={"data": {"column": spec.source_name, "headers": list(headers)}},
            )
        else:
            logger.debug("column %r not found in headers, entry dropped", spec.source_name)

    if strict_headers:
        required_missing = [m.source_name for m in missing if m.required]
        if required_missing:
            raise ConfigurationError(f"required columns missing from headers: {required_missing}")

    return ColumnPlan(headers=tuple(headers), bindings=tuple(bindings), missing=tuple(missing))


def identity_specs(headers: Sequence[str]) -> list[ColumnSpec]:
    """Dynamic imports without a mapping: every header maps to a field of the same name."""
    seen: set[str] = set()
    out: list[ColumnSpec] = []
    for h in headers:
        if h.lower() in seen:
            continue
        seen.add(h.lower())
        out.append(ColumnSpec(source_name=h, target_field=h))
    return out
