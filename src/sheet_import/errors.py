from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sheet_import.parsing.types import ImportFailure, ImportResult


class SheetImportError(Exception):
    """Base for every error raised out of an import call."""


class ConfigurationError(SheetImportError, ValueError):
    """
    Raised before any row is processed when the call itself is unusable:
    bad mapping, bad template, unsupported source, invalid settings.
    """


class SourceNotFoundError(ConfigurationError, FileNotFoundError):
    """Input file (or template file) does not exist."""


class SheetIndexError(ConfigurationError, IndexError):
    """Requested sheet index is outside the workbook's sheet range."""

    def __init__(self, sheet_index: int, sheet_count: int) -> None:
        self.sheet_index = sheet_index
        self.sheet_count = sheet_count
        super().__init__(
            f"sheet index {sheet_index} is invalid, the file has {sheet_count} sheet(s) "
            f"(valid indexes: 0-{max(sheet_count - 1, 0)})"
        )


class UnsupportedSourceError(ConfigurationError):
    """File extension has no row source."""


class RowImportError(SheetImportError):
    """
    First failed row when `stop_on_first_error` is set.
    Carries the failure and whatever was accumulated before it.
    """

    def __init__(self, failure: "ImportFailure", result: "ImportResult[Any]") -> None:
        self.failure = failure
        self.result = result
        super().__init__(f"row {failure.row_index} failed: {failure.error_message}")


class SourceReadError(SheetImportError):
    """Reading the next row from the source failed mid-stream."""

    def __init__(self, message: str, result: "ImportResult[Any] | None" = None) -> None:
        self.result = result
        super().__init__(message)
