from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, ClassVar, Generic, Mapping, TypeVar

from sheet_import.config import DEFAULT_SENSITIVE_FIELDS
from sheet_import.parsing.schema import ColumnMappingInput, ImportTemplate
from sheet_import.parsing.types import ImportResult, ProcessStatus, RowFailure

from .importer import ImportStream, collect_results, iter_import_results
from .rows import ValidatingCallback

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ImportAdapter(Generic[T]):
    """
    One data source's import recipe: which columns go where, what happens to
    everything else, and how rows are checked.

    Subclasses set the class attributes and override `convert` / `validate`.
    With `target_type = None` records are dicts.
    """

    data_source_name: ClassVar[str] = ""
    version: ClassVar[str] = "1"
    remark: ClassVar[str] = ""
    target_type: ClassVar[type | None] = None
    column_mapping: ClassVar[ColumnMappingInput] = None
    has_header: ClassVar[bool] = True

    def __init__(
        self,
        *,
        unmapped_field_name: str | None = "raw_data_json",
        sensitive_field_names: tuple[str, ...] = DEFAULT_SENSITIVE_FIELDS,
    ) -> None:
        self.unmapped_field_name = unmapped_field_name
        self.sensitive_field_names = tuple(sensitive_field_names)

    def convert(self, row_index: int, record: T, unmapped: Mapping[str, Any]) -> None:
        """Derive fields that no column maps directly. Runs before `validate`."""

    def validate(
        self,
        row_index: int,
        record: T,
        row_values: Mapping[str, Any],
        unmapped: Mapping[str, Any],
        failure: RowFailure,
    ) -> ProcessStatus | None:
        return ProcessStatus.CONTINUE

    def _on_validating(
        self,
        row_index: int,
        record: T,
        row_values: Mapping[str, Any],
        unmapped: Mapping[str, Any],
        failure: RowFailure,
    ) -> ProcessStatus | None:
        self.convert(row_index, record, unmapped)
        return self.validate(row_index, record, row_values, unmapped, failure)

    def _validator(self, extra: ValidatingCallback[T] | None) -> ValidatingCallback[T]:
        """`convert`, `validate`, then a caller's own callback while the row is still CONTINUE."""
        if extra is None:
            return self._on_validating

        def chained(
            row_index: int,
            record: T,
            row_values: Mapping[str, Any],
            unmapped: Mapping[str, Any],
            failure: RowFailure,
        ) -> ProcessStatus | None:
            status = self._on_validating(row_index, record, row_values, unmapped, failure)
            if status is not None and status is not ProcessStatus.CONTINUE:
                return status
            return extra(row_index, record, row_values, unmapped, failure)

        return chained

    def stream(self, path: str | Path, *, mapping: ColumnMappingInput = None, **options: Any) -> ImportStream[T]:
        """
        Streaming import of `path`. `mapping` replaces the adapter's own
        `column_mapping` for this call; an `on_validating` option runs after
        the adapter's own `validate`.
        """
        extra = options.pop("on_validating", None)
        options.setdefault("unmapped_field_name", self.unmapped_field_name)
        options.setdefault("sensitive_field_names", self.sensitive_field_names)
        options.setdefault("has_header", self.has_header)
        logger.debug("adapter %s v%s importing %s", self.data_source_name or type(self).__name__, self.version, path)
        return iter_import_results(
            path,
            mapping if mapping is not None else self.column_mapping,
            target_type=self.target_type,
            on_validating=self._validator(extra),
            **options,
        )

    def load(self, path: str | Path, *, mapping: ColumnMappingInput = None, **options: Any) -> ImportResult[T]:
        return collect_results(self.stream(path, mapping=mapping, **options))


class TemplateAdapter(ImportAdapter[dict[str, Any]]):
    """Dict-record adapter configured from a stored `ImportTemplate`."""

    def __init__(self, template: ImportTemplate) -> None:
        super().__init__(
            unmapped_field_name=template.unmapped_field_name,
            sensitive_field_names=(
                template.sensitive_field_names
                if template.sensitive_field_names is not None
                else DEFAULT_SENSITIVE_FIELDS
            ),
        )
        self.template = template

    def stream(self, path: str | Path, *, mapping: ColumnMappingInput = None, **options: Any) -> ImportStream[dict[str, Any]]:
        options.setdefault("has_header", self.template.has_header)
        options.setdefault("start_row", self.template.start_row_index)
        columns = mapping if mapping is not None else (list(self.template.columns) or None)
        return super().stream(path, mapping=columns, **options)
