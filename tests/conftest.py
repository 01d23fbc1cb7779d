from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Any, Callable, Iterator, Sequence

import openpyxl
import pytest

from sheet_import.config import Settings
from sheet_import.parsing.accessors import AccessorCache


def _find_repo_root(start: Path) -> Path:
    marker = "pyproject.toml"
    cur = start.resolve()
    for p in (cur, *cur.parents):
        if (p / marker).exists():
            return p
    raise RuntimeError(f"Could not find repo root from: {start}")


@pytest.fixture(scope="session")
def repo_root() -> Path:
    """The absolute path to the repo root (finds by walking up to `pyproject.toml`)."""
    return _find_repo_root(Path(__file__))


Rows = Sequence[Sequence[Any]]


@pytest.fixture()
def write_csv(tmp_path: Path) -> Callable[..., Path]:
    """Writes `rows` (header first) to a CSV file in `tmp_path`."""
    def _write(rows: Rows, name: str = "data.csv", encoding: str = "utf-8") -> Path:
        path = tmp_path / name
        with path.open("w", encoding=encoding, newline="") as f:
            csv.writer(f).writerows(rows)
        return path
    return _write


@pytest.fixture()
def write_xlsx(tmp_path: Path) -> Callable[..., Path]:
    """
    Writes a workbook to `tmp_path`. `sheets` maps sheet title -> rows,
    in order; the first entry becomes the first sheet.
    """
    def _write(sheets: dict[str, Rows], name: str = "data.xlsx") -> Path:
        wb = openpyxl.Workbook()
        wb.remove(wb.active)
        for title, rows in sheets.items():
            ws = wb.create_sheet(title)
            for row in rows:
                ws.append(list(row))
        path = tmp_path / name
        wb.save(path)
        return path
    return _write


@pytest.fixture()
def settings() -> Settings:
    """Defaults, independent of the test process environment."""
    return Settings()


@pytest.fixture()
def accessor_cache() -> AccessorCache:
    """A fresh cache per test, so nothing leaks between test cases."""
    return AccessorCache()


# Scenario sheet used across the pipeline tests: row index 1 has a bad Age.
PEOPLE_ROWS: list[list[Any]] = [
    ["Name", "Age"],
    ["Ada", "36"],
    ["Bob", "abc"],
    ["Cy", "41"],
]


@pytest.fixture()
def people_csv(write_csv: Callable[..., Path]) -> Path:
    return write_csv(PEOPLE_ROWS, name="people.csv")


@pytest.fixture()
def people_xlsx(write_xlsx: Callable[..., Path]) -> Path:
    return write_xlsx({"People": PEOPLE_ROWS}, name="people.xlsx")


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """`configure_logging` detaches the package logger from root; undo that after each test."""
    yield
    logger = logging.getLogger("sheet_import")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
