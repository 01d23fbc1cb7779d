"""
How a row pipeline builds and writes its records.

The typed variant writes attributes through cached `FieldAccessor`s; the
dynamic variant writes keys into a plain dict. The row pipeline only ever
talks to the `Materializer` protocol, so both share one state machine.
"""

from __future__ import annotations

from typing import Any, Generic, Protocol, Sequence, TypeVar

from sheet_import.parsing.accessors import AccessorCache, FieldAccessor, default_accessor_cache
from sheet_import.parsing.coercion import unwrap_optional
from sheet_import.parsing.schema import ColumnSpec

T = TypeVar("T")


class Materializer(Protocol[T]):
    def create(self) -> T: ...

    def resolve_field(self, name: str) -> str | None:
        """Canonical field name, or `None` when the record has no such field."""
        ...

    def field_type(self, name: str) -> Any: ...

    def assign(self, record: T, name: str, value: Any) -> None: ...

    def read(self, record: T, name: str) -> Any: ...

    def accepts_text(self, name: str) -> bool:
        """Whether a JSON string may be stored in `name`."""
        ...


class TypedMaterializer(Generic[T]):
    """Instances of `owner`, built with `owner()` and filled attribute by attribute."""

    def __init__(self, owner: type[T], cache: AccessorCache | None = None) -> None:
        self.owner = owner
        self.cache = cache or default_accessor_cache()

    def _accessor(self, name: str) -> FieldAccessor:
        accessor = self.cache.get_accessor(self.owner, name)
        if accessor is None:
            raise AttributeError(f"{self.owner.__name__} has no field {name!r}")
        return accessor

    def create(self) -> T:
        return self.owner()

    def resolve_field(self, name: str) -> str | None:
        return self.cache.resolve_name(self.owner, name)

    def field_type(self, name: str) -> Any:
        return self._accessor(name).field_type

    def assign(self, record: T, name: str, value: Any) -> None:
        self._accessor(name).set(record, value)

    def read(self, record: T, name: str) -> Any:
        return self._accessor(name).get(record)

    def accepts_text(self, name: str) -> bool:
        accessor = self.cache.get_accessor(self.owner, name)
        if accessor is None:
            return False
        base = unwrap_optional(accessor.field_type).base
        return base is str or base is Any


class RecordMaterializer:
    """
    `dict[str, Any]` records.

    Mapped fields take their declared type from `ColumnSpec.data_type`; any
    other name (batch properties, the unmapped field) is accepted as `Any`.
    """

    def __init__(self, specs: Sequence[ColumnSpec] = ()) -> None:
        self._types: dict[str, tuple[str, Any]] = {}
        for spec in specs:
            self._types.setdefault(spec.target_field.lower(), (spec.target_field, spec.declared_type()))

    def create(self) -> dict[str, Any]:
        return {}

    def resolve_field(self, name: str) -> str | None:
        name = name.strip()
        if not name:
            return None
        entry = self._types.get(name.lower())
        return entry[0] if entry else name

    def field_type(self, name: str) -> Any:
        entry = self._types.get(name.lower())
        return entry[1] if entry else Any

    def assign(self, record: dict[str, Any], name: str, value: Any) -> None:
        record[name] = value

    def read(self, record: dict[str, Any], name: str) -> Any:
        return record.get(name)

    def accepts_text(self, name: str) -> bool:
        return True
