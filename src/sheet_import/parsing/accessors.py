from __future__ import annotations

import operator
import typing
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from .coercion import unwrap_optional

Getter = Callable[[Any], Any]
Setter = Callable[[Any, Any], None]


@dataclass(frozen=True, slots=True)
class FieldAccessor:
    """Get/set pair bound to one (type, field). Pure functions of the type."""
    owner: type
    name: str                   # canonical attribute name on `owner`
    field_type: Any             # declared annotation, `Any` when unannotated
    nullable: bool
    getter: Getter
    setter: Setter

    def get(self, record: Any) -> Any:
        return self.getter(record)

    def set(self, record: Any, value: Any) -> None:
        self.setter(record, value)


def _property_type(prop: property) -> Any:
    try:
        return typing.get_type_hints(prop.fget).get("return", Any)
    except Exception:
        return Any


def _field_types(owner: type) -> dict[str, Any]:
    """Writable field names with their declared types."""
    try:
        hints = typing.get_type_hints(owner)
    except Exception:
        # unresolvable forward references: fall back to the raw annotations
        hints = {
            k: (Any if isinstance(v, str) else v)
            for k, v in getattr(owner, "__annotations__", {}).items()
        }

    out: dict[str, Any] = {}
    for name, tp in hints.items():
        if name.startswith("_") or typing.get_origin(tp) is typing.ClassVar:
            continue
        out[name] = tp

    # properties with a setter are writable fields as well
    for name in dir(owner):
        attr = getattr(owner, name, None)
        if isinstance(attr, property) and attr.fset is not None and not name.startswith("_"):
            out.setdefault(name, _property_type(attr))
    return out


def _compile(owner: type, name: str) -> tuple[Getter, Setter]:
    getter = operator.attrgetter(name)

    params = getattr(owner, "__dataclass_params__", None)
    if params is not None and params.frozen:
        # frozen dataclasses are still built field by field during an import
        def setter(record: Any, value: Any, _name: str = name) -> None:
            object.__setattr__(record, _name, value)
    else:
        def setter(record: Any, value: Any, _name: str = name) -> None:
            setattr(record, _name, value)

    return getter, setter


class AccessorCache:
    """
    Process-wide (or injected) cache of field accessors.

    Two maps, both filled with `dict.setdefault`:
    - owner type -> {lowercased field name: (canonical name, declared type)}
    - (owner type, canonical name) -> `FieldAccessor`

    No lock is held while building. Concurrent first requests for the same key
    may each build an accessor; `setdefault` keeps one and both are equivalent.
    Entries are never evicted.
    """

    def __init__(self) -> None:
        self._fields: dict[type, Mapping[str, tuple[str, Any]]] = {}
        self._accessors: dict[tuple[type, str], FieldAccessor] = {}

    def fields_of(self, owner: type) -> Mapping[str, tuple[str, Any]]:
        found = self._fields.get(owner)
        if found is None:
            built = {name.lower(): (name, tp) for name, tp in _field_types(owner).items()}
            found = self._fields.setdefault(owner, built)
        return found

    def resolve_name(self, owner: type, field_name: str) -> str | None:
        """Canonical attribute name for `field_name` (case-insensitive), or `None`."""
        entry = self.fields_of(owner).get(field_name.strip().lower())
        return entry[0] if entry else None

    def get_accessor(self, owner: type, field_name: str) -> FieldAccessor | None:
        """Accessor for `owner.field_name`, built on first request. `None` for unknown fields."""
        entry = self.fields_of(owner).get(field_name.strip().lower())
        if entry is None:
            return None
        name, tp = entry

        key = (owner, name)
        accessor = self._accessors.get(key)
        if accessor is None:
            getter, setter = _compile(owner, name)
            target = unwrap_optional(tp)
            accessor = self._accessors.setdefault(
                key,
                FieldAccessor(
                    owner=owner,
                    name=name,
                    field_type=tp,
                    nullable=target.nullable,
                    getter=getter,
                    setter=setter,
                ),
            )
        return accessor

    def __len__(self) -> int:
        return len(self._accessors)

    def clear(self) -> None:
        self._fields.clear()
        self._accessors.clear()


_DEFAULT_CACHE = AccessorCache()


def default_accessor_cache() -> AccessorCache:
    """Shared cache used when a caller does not inject one."""
    return _DEFAULT_CACHE


def is_constructible(owner: type) -> bool:
    """Typed targets are built with `owner()` before any field is assigned."""
    try:
        owner()
    except TypeError:
        return False
    return True

