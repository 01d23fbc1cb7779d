from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import pytest

from sheet_import.config import Settings
from sheet_import.errors import (
    ConfigurationError,
    RowImportError,
    SheetIndexError,
    SourceNotFoundError,
    SourceReadError,
    UnsupportedSourceError,
)
from sheet_import.parsing.accessors import AccessorCache
from sheet_import.parsing.schema import ColumnSpec
from sheet_import.parsing.types import ImportProgress, ProcessStatus
from sheet_import.pipeline.importer import import_dynamic, import_typed, iter_import_results


@dataclass
class Person:
    name: str = ""
    age: int = 0
    row: int = -1


class NeedsArgs:
    def __init__(self, name: str) -> None:
        self.name = name


MAPPING = {"Name": "name", "Age": "age"}


## -- preconditions

def test_missing_file_fails_before_reading(tmp_path: Path, settings: Settings) -> None:
    with pytest.raises(SourceNotFoundError):
        import_dynamic(tmp_path / "nope.csv", settings=settings)


def test_unsupported_extension(tmp_path: Path, settings: Settings) -> None:
    path = tmp_path / "data.json"
    path.write_text("{}", encoding="utf-8")
    with pytest.raises(UnsupportedSourceError):
        import_dynamic(path, settings=settings)


@pytest.mark.parametrize("sheet_index", [-1, 1])
def test_invalid_sheet_index(people_csv: Path, settings: Settings, sheet_index: int) -> None:
    with pytest.raises(SheetIndexError, match=r"valid indexes: 0-0"):
        import_dynamic(people_csv, sheet_index=sheet_index, settings=settings)


def test_typed_import_requires_a_mapping(people_csv: Path, settings: Settings) -> None:
    with pytest.raises(ConfigurationError, match="mapping is required"):
        import_typed(people_csv, Person, {"  ": "name"}, settings=settings)


def test_typed_target_must_be_constructible(people_csv: Path, settings: Settings) -> None:
    with pytest.raises(ConfigurationError, match="NeedsArgs"):
        import_typed(people_csv, NeedsArgs, {"Name": "name"}, settings=settings)


def test_mapping_entries_for_unknown_fields_are_dropped(
    people_csv: Path, settings: Settings, accessor_cache: AccessorCache, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING, logger="sheet_import"):
        result = import_typed(
            people_csv, Person, {"Name": "name", "Age": "shoe_size"}, settings=settings, accessor_cache=accessor_cache
        )

    assert [p.name for p in result.items] == ["Ada", "Bob", "Cy"]
    assert any("shoe_size" in r.getMessage() for r in caplog.records)


def test_strict_headers_reject_missing_required_columns(write_csv: Callable[..., Path], settings: Settings) -> None:
    path = write_csv([["Name"], ["Ada"]])
    stream = iter_import_results(
        path, [ColumnSpec("Email", "email", required=True)], strict_headers=True, settings=settings
    )
    with pytest.raises(ConfigurationError, match="Email"):
        next(stream)


## -- flow control

def test_abort_stops_reading_further_rows(people_csv: Path, settings: Settings, accessor_cache: AccessorCache) -> None:
    visited: list[int] = []

    def validate(i: int, *_: Any) -> ProcessStatus:
        return ProcessStatus.ABORT if i == 0 else ProcessStatus.CONTINUE

    result = import_typed(
        people_csv,
        Person,
        MAPPING,
        batch_dynamic={"row": lambda i: visited.append(i) or i},
        on_validating=validate,
        stop_on_first_error=False,
        settings=settings,
        accessor_cache=accessor_cache,
    )

    assert visited == [0]
    assert result.aborted
    assert result.items == []
    assert [f.row_index for f in result.failures] == [0]


def test_stop_on_first_error_raises_with_the_partial_result(
    people_csv: Path, settings: Settings, accessor_cache: AccessorCache
) -> None:
    visited: list[int] = []

    with pytest.raises(RowImportError) as e:
        import_typed(
            people_csv,
            Person,
            MAPPING,
            batch_dynamic={"row": lambda i: visited.append(i) or i},
            stop_on_first_error=True,
            settings=settings,
            accessor_cache=accessor_cache,
        )

    assert visited == [0, 1]
    assert e.value.failure.row_index == 1
    assert "row 1" in str(e.value)
    assert [p.name for p in e.value.result.items] == ["Ada"]


def test_cancellation_halts_between_rows_without_a_failure(
    people_csv: Path, settings: Settings, accessor_cache: AccessorCache
) -> None:
    cancel = threading.Event()

    result = import_typed(
        people_csv,
        Person,
        MAPPING,
        on_created=lambda i, rec: cancel.set(),
        cancel=cancel,
        settings=settings,
        accessor_cache=accessor_cache,
    )

    assert result.cancelled
    assert not result.aborted
    assert [p.name for p in result.items] == ["Ada"]
    assert result.failures == []


def test_progress_reports_every_step_and_at_the_end(people_csv: Path, accessor_cache: AccessorCache) -> None:
    seen: list[ImportProgress] = []

    import_typed(
        people_csv,
        Person,
        MAPPING,
        on_progress=seen.append,
        settings=Settings(progress_step=2),
        accessor_cache=accessor_cache,
    )

    assert [p.processed for p in seen] == [2, 3]
    assert seen[-1] == ImportProgress(processed=3, succeeded=2, failed=1, skipped=0, total_rows=None)


def test_streaming_form_yields_one_outcome_per_row(people_csv: Path, settings: Settings) -> None:
    with iter_import_results(people_csv, {"Name": "name", "Age": "age"}, settings=settings) as stream:
        outcomes = list(stream)

    assert [o.row_index for o in outcomes] == [0, 1, 2]
    assert [o.status for o in outcomes] == [ProcessStatus.CONTINUE] * 3
    # no data_type: dict records pass values through
    assert outcomes[1].record == {"name": "Bob", "age": "abc"}
    assert stream.headers == ["Name", "Age"]


def test_closing_a_stream_early_releases_it(people_xlsx: Path, settings: Settings) -> None:
    stream = iter_import_results(people_xlsx, settings=settings)
    first = next(stream)
    stream.close()

    assert first.row_index == 0
    with pytest.raises(StopIteration):
        next(stream)


def test_read_errors_mid_stream_carry_the_partial_result(tmp_path: Path, settings: Settings) -> None:
    path = tmp_path / "bad.csv"
    good_rows = "".join(f"name{i},{i}\n" for i in range(3000))
    path.write_bytes(b"Name,Age\n" + good_rows.encode("utf-8") + b"bad,\xff\xfe\n")

    with pytest.raises(SourceReadError) as e:
        import_dynamic(path, settings=settings)

    assert isinstance(e.value.__cause__, UnicodeDecodeError)
    assert e.value.result is not None
    assert e.value.result.success_count > 0
