from __future__ import annotations

import logging

import pytest

from sheet_import.errors import ConfigurationError
from sheet_import.parsing.columns import (
    identity_specs,
    normalize_headers,
    resolve_columns,
    synthetic_column_name,
)
from sheet_import.parsing.schema import ColumnSpec


def test_normalize_headers_fills_blank_cells_with_synthetic_names() -> None:
    assert normalize_headers(["Name", None, "  ", " Age "]) == ["Name", "Column2", "Column3", "Age"]
    assert synthetic_column_name(1) == "Column1"


def test_normalize_headers_suffixes_repeated_names() -> None:
    assert normalize_headers(["Name", "name", "Name_2", "Name"]) == ["Name", "name_2", "Name_2_2", "Name_3"]


def test_resolution_is_case_insensitive_then_trimmed() -> None:
    headers = ["NAME", " Age "]
    specs = [ColumnSpec("name", "Name"), ColumnSpec("age", "Age")]

    plan = resolve_columns(headers, specs)

    assert [(b.spec.target_field, b.index) for b in plan.bindings] == [("Name", 0), ("Age", 1)]
    assert plan.missing == ()
    assert plan.consumed == frozenset({0, 1})


def test_unresolved_entries_are_dropped_and_reported(caplog: pytest.LogCaptureFixture) -> None:
    specs = [
        ColumnSpec("Name", "Name"),
        ColumnSpec("Email", "Email", required=True),
        ColumnSpec("Phone", "Phone"),
    ]
    with caplog.at_level(logging.DEBUG, logger="sheet_import"):
        plan = resolve_columns(["Name"], specs)

    assert [b.spec.source_name for b in plan.bindings] == ["Name"]
    assert [m.source_name for m in plan.missing] == ["Email", "Phone"]

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "Email" in warnings[0].getMessage()


def test_missing_column_with_default_keeps_a_default_only_binding() -> None:
    plan = resolve_columns(["Name"], [ColumnSpec("Country", "country", default_value="GB")])

    assert len(plan.bindings) == 1
    assert plan.bindings[0].index is None
    assert plan.consumed == frozenset()


def test_strict_headers_fail_fast_on_missing_required_column() -> None:
    with pytest.raises(ConfigurationError, match="Email"):
        resolve_columns(["Name"], [ColumnSpec("Email", "Email", required=True)], strict_headers=True)

    # optional columns never fail, even in strict mode
    plan = resolve_columns(["Name"], [ColumnSpec("Phone", "Phone")], strict_headers=True)
    assert plan.bindings == ()


def test_identity_specs_dedupes_case_insensitively() -> None:
    specs = identity_specs(["A", "B", "a"])
    assert [(s.source_name, s.target_field) for s in specs] == [("A", "A"), ("B", "B")]
