from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, ClassVar, Optional

from sheet_import.parsing.accessors import AccessorCache, is_constructible


@dataclass
class Person:
    name: str = ""
    age: int = 0
    nickname: Optional[str] = None
    kind: ClassVar[str] = "person"
    _secret: str = ""


@dataclass(frozen=True)
class FrozenPerson:
    name: str = ""


class WithProperty:
    def __init__(self) -> None:
        self._score = 0

    @property
    def score(self) -> int:
        return self._score

    @score.setter
    def score(self, value: int) -> None:
        self._score = value


class NeedsArgs:
    def __init__(self, x: int) -> None:
        self.x = x


def test_accessor_resolves_case_insensitively(accessor_cache: AccessorCache) -> None:
    acc = accessor_cache.get_accessor(Person, "AGE")
    assert acc is not None
    assert acc.name == "age"
    assert acc.field_type is int
    assert acc.nullable is False

    p = Person()
    acc.set(p, 36)
    assert acc.get(p) == 36
    assert p.age == 36


def test_optional_fields_are_nullable(accessor_cache: AccessorCache) -> None:
    acc = accessor_cache.get_accessor(Person, "nickname")
    assert acc is not None
    assert acc.nullable is True


def test_unknown_private_and_classvar_names_have_no_accessor(accessor_cache: AccessorCache) -> None:
    assert accessor_cache.get_accessor(Person, "missing") is None
    assert accessor_cache.get_accessor(Person, "kind") is None
    assert accessor_cache.get_accessor(Person, "_secret") is None


def test_repeated_resolution_returns_the_cached_accessor(accessor_cache: AccessorCache) -> None:
    first = accessor_cache.get_accessor(Person, "name")
    second = accessor_cache.get_accessor(Person, "Name")
    assert first is second
    assert len(accessor_cache) == 1


def test_independent_caches_build_equivalent_accessors() -> None:
    a = AccessorCache().get_accessor(Person, "name")
    b = AccessorCache().get_accessor(Person, "name")
    assert a is not None and b is not None

    p = Person()
    a.set(p, "Ada")
    assert b.get(p) == "Ada"
    b.set(p, "Bob")
    assert a.get(p) == "Bob"


def test_concurrent_first_requests_converge(accessor_cache: AccessorCache) -> None:
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: accessor_cache.get_accessor(Person, "age"), range(64)))

    assert all(r is results[0] for r in results)
    assert len(accessor_cache) == 1


def test_frozen_dataclasses_are_still_writable(accessor_cache: AccessorCache) -> None:
    acc = accessor_cache.get_accessor(FrozenPerson, "name")
    assert acc is not None
    p = FrozenPerson()
    acc.set(p, "Ada")
    assert p.name == "Ada"


def test_settable_properties_are_fields(accessor_cache: AccessorCache) -> None:
    acc = accessor_cache.get_accessor(WithProperty, "score")
    assert acc is not None
    assert acc.field_type is int

    obj = WithProperty()
    acc.set(obj, 5)
    assert obj.score == 5


def test_clear_empties_both_maps(accessor_cache: AccessorCache) -> None:
    accessor_cache.get_accessor(Person, "name")
    accessor_cache.clear()
    assert len(accessor_cache) == 0


def test_is_constructible() -> None:
    assert is_constructible(Person)
    assert not is_constructible(NeedsArgs)


def test_unannotated_fields_read_as_any(accessor_cache: AccessorCache) -> None:
    @dataclass
    class Loose:
        value: Any = None

    acc = accessor_cache.get_accessor(Loose, "value")
    assert acc is not None
    assert acc.nullable is True
