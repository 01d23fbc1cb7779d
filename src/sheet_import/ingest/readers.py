from __future__ import annotations

import csv
import logging
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from itertools import chain, islice
from pathlib import Path
from typing import Any, Iterable, Iterator

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from sheet_import.config import Settings, get_settings
from sheet_import.errors import (
    SheetIndexError,
    SourceNotFoundError,
    SourceReadError,
    UnsupportedSourceError,
)
from sheet_import.parsing.columns import normalize_headers, synthetic_column_name
from sheet_import.parsing.primitives import is_blank

logger = logging.getLogger(__name__)

CSV_SUFFIXES = frozenset({".csv"})
XLSX_SUFFIXES = frozenset({".xlsx", ".xlsm"})

# what a row source can raise while reading the next row
READ_ERRORS = (OSError, UnicodeDecodeError, csv.Error, zipfile.BadZipFile, EOFError)


@dataclass
class RowSource:
    """
    An open, forward-only stream over one sheet.

    `rows` yields `(row_index, values)`: `row_index` is 0-based over data rows
    (header not counted) and `values` always has `len(headers)` cells.
    Fully blank rows are never yielded but still consume their index.
    """
    path: Path
    sheet_name: str
    headers: list[str]
    rows: Iterator[tuple[int, list[Any]]]
    total_rows: int | None              # data-row estimate, `None` when unknown


def check_input_path(path: Path) -> str:
    """Lowercased suffix of a readable input. Raises before anything is opened."""
    if not path.exists():
        raise SourceNotFoundError(f"input file not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in CSV_SUFFIXES and suffix not in XLSX_SUFFIXES:
        raise UnsupportedSourceError(f"unsupported input format {suffix!r} (expected .csv, .xlsx or .xlsm)")
    return suffix


def _fit(values: Iterable[Any], width: int) -> list[Any]:
    """Pad short rows with `None`, drop cells past the header width."""
    row = list(values)[:width]
    if len(row) < width:
        row.extend([None] * (width - len(row)))
    return row


def _data_rows(raw_rows: Iterator[Iterable[Any]], width: int, *, path: Path) -> Iterator[tuple[int, list[Any]]]:
    warned = False
    for i, raw in enumerate(raw_rows):
        cells = list(raw)
        if not warned and any(not is_blank(v) for v in cells[width:]):
            warned = True
            logger.warning(
                "%s: row %d has values past the last of %d column(s), they are ignored",
                path.name,
                i,
                width,
                extra={"data": {"path": str(path), "row_index": i, "width": width, "cells": len(cells)}},
            )
        row = _fit(cells, width)
        if all(is_blank(v) for v in row):
            continue
        yield i, row


def _split_header(
    raw_rows: Iterator[Iterable[Any]], *, has_header: bool, width: int = 0
) -> tuple[list[str], Iterator[Iterable[Any]]]:
    """
    Header names plus the iterator positioned at the first data row.

    Headerless sources get `Column1..N`, N being the wider of the first row
    and `width` (the widest row the caller knows of).
    """
    try:
        first = next(raw_rows, None)
    except READ_ERRORS as e:
        raise SourceReadError(f"cannot read the first row: {type(e).__name__}: {e}") from e
    if first is None:
        return [], iter(())
    first = list(first)
    if has_header:
        return normalize_headers(first), raw_rows
    headers = [synthetic_column_name(i) for i in range(1, max(len(first), width) + 1)]
    return headers, chain([first], raw_rows)


## -- workbooks

def _open_workbook(path: Path) -> Any:
    try:
        return openpyxl.load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise SourceReadError(f"cannot open workbook {path}: {e}") from e


def _worksheet(workbook: Any, sheet_index: int) -> Any:
    names = workbook.sheetnames
    if sheet_index < 0 or sheet_index >= len(names):
        raise SheetIndexError(sheet_index, len(names))
    return workbook[names[sheet_index]]


@contextmanager
def _xlsx_source(path: Path, *, sheet_index: int, has_header: bool, start_row: int) -> Iterator[RowSource]:
    workbook = _open_workbook(path)
    try:
        sheet = _worksheet(workbook, sheet_index)
        raw_rows = sheet.iter_rows(min_row=start_row + 1, values_only=True)
        max_column = getattr(sheet, "max_column", None)
        headers, data = _split_header(
            raw_rows,
            has_header=has_header,
            width=max_column if isinstance(max_column, int) else 0,
        )

        total: int | None = None
        max_row = getattr(sheet, "max_row", None)
        if isinstance(max_row, int) and max_row > 0:
            total = max(max_row - start_row - (1 if has_header else 0), 0)

        yield RowSource(
            path=path,
            sheet_name=sheet.title,
            headers=headers,
            rows=_data_rows(data, len(headers), path=path),
            total_rows=total,
        )
    finally:
        workbook.close()


## -- csv

def _csv_width(path: Path, settings: Settings, start_row: int) -> int:
    """Widest row of the file. Only headerless CSVs need the extra pass."""
    try:
        with path.open("r", encoding=settings.csv_encoding, newline="") as f:
            reader = islice(csv.reader(f, delimiter=settings.csv_delimiter), start_row, None)
            return max((len(r) for r in reader), default=0)
    except READ_ERRORS as e:
        raise SourceReadError(f"cannot read {path}: {type(e).__name__}: {e}") from e


@contextmanager
def _csv_source(
    path: Path, *, sheet_index: int, has_header: bool, start_row: int, settings: Settings
) -> Iterator[RowSource]:
    if sheet_index != 0:
        raise SheetIndexError(sheet_index, 1)
    width = 0 if has_header else _csv_width(path, settings, start_row)
    with path.open("r", encoding=settings.csv_encoding, newline="") as f:
        reader = islice(csv.reader(f, delimiter=settings.csv_delimiter), start_row, None)
        headers, data = _split_header(reader, has_header=has_header, width=width)
        yield RowSource(
            path=path,
            sheet_name=path.stem,
            headers=headers,
            rows=_data_rows(data, len(headers), path=path),
            total_rows=None,
        )


@contextmanager
def open_row_source(
    path: Path,
    *,
    sheet_index: int = 0,
    has_header: bool = True,
    start_row: int = 0,
    settings: Settings | None = None,
) -> Iterator[RowSource]:
    """
    Open `path` and yield a `RowSource` over the requested sheet.

    `start_row` is the 0-based sheet row the table starts at (its header row,
    or its first data row when headerless); rows above it are never read.
    The file handle (or workbook) is released when the `with` block exits,
    whatever the reason.
    """
    path = Path(path)
    suffix = check_input_path(path)
    settings = settings or get_settings()

    if suffix in CSV_SUFFIXES:
        cm = _csv_source(
            path, sheet_index=sheet_index, has_header=has_header, start_row=start_row, settings=settings
        )
    else:
        cm = _xlsx_source(path, sheet_index=sheet_index, has_header=has_header, start_row=start_row)

    with cm as source:
        logger.debug(
            "opened %s sheet %r (%d columns)",
            path.name,
            source.sheet_name,
            len(source.headers),
            extra={"data": {"path": str(path), "sheet_index": sheet_index, "headers": source.headers}},
        )
        yield source


## -- sheet utilities

def list_sheets(path: Path) -> dict[int, str]:
    """`{index: name}` for every sheet. A CSV file is one sheet named after its stem."""
    path = Path(path)
    suffix = check_input_path(path)
    if suffix in CSV_SUFFIXES:
        return {0: path.stem}
    workbook = _open_workbook(path)
    try:
        return dict(enumerate(workbook.sheetnames))
    finally:
        workbook.close()


def sheet_count(path: Path) -> int:
    return len(list_sheets(path))


def is_sheet_index_valid(path: Path, index: int) -> bool:
    return 0 <= index < sheet_count(path)
