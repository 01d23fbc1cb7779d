from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Generic, Iterator, Mapping, Sequence, TypeVar

from sheet_import.config import Settings, get_settings
from sheet_import.errors import (
    ConfigurationError,
    RowImportError,
    SheetIndexError,
    SourceReadError,
)
from sheet_import.ingest.readers import READ_ERRORS, RowSource, check_input_path, open_row_source, sheet_count
from sheet_import.parsing.accessors import AccessorCache, default_accessor_cache, is_constructible
from sheet_import.parsing.columns import identity_specs, resolve_columns
from sheet_import.parsing.schema import ColumnMappingInput, ColumnSpec, normalize_column_specs
from sheet_import.parsing.types import ImportProgress, ImportResult, ProcessStatus, RowOutcome

from .batch import BatchProperties, DynamicValue
from .materializers import Materializer, RecordMaterializer, TypedMaterializer
from .rows import CreatedCallback, RowPipeline, ValidatingCallback

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[ImportProgress], None]


class ImportStream(Generic[T]):
    """
    Forward-only iterator of `RowOutcome`s for one sheet.

    The source is opened on the first `next()` and released when the stream
    is exhausted, halted, or closed. Use it as a context manager to make sure
    an abandoned stream still releases its file.
    """

    def __init__(
        self,
        path: Path,
        build_pipeline: Callable[[list[str]], RowPipeline[T]],
        *,
        sheet_index: int,
        has_header: bool,
        start_row: int,
        settings: Settings,
        stop_on_first_error: bool,
        cancel: threading.Event | None,
        on_progress: ProgressCallback | None,
    ) -> None:
        self.path = path
        self.sheet_index = sheet_index
        self.has_header = has_header
        self.start_row = start_row
        self.settings = settings
        self.stop_on_first_error = stop_on_first_error
        self.cancel = cancel
        self.on_progress = on_progress
        self._build_pipeline = build_pipeline

        self.headers: list[str] = []
        self.total_rows: int | None = None
        self.aborted = False
        self.cancelled = False
        self.stopped_on_error = False
        self.processed = self.succeeded = self.failed = self.skipped = 0

        self._gen = self._generate()

    def __iter__(self) -> "ImportStream[T]":
        return self

    def __next__(self) -> RowOutcome[T]:
        return next(self._gen)

    def close(self) -> None:
        self._gen.close()

    def __enter__(self) -> "ImportStream[T]":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def progress(self) -> ImportProgress:
        return ImportProgress(
            processed=self.processed,
            succeeded=self.succeeded,
            failed=self.failed,
            skipped=self.skipped,
            total_rows=self.total_rows,
        )

    def _count(self, outcome: RowOutcome[T]) -> None:
        self.processed += 1
        if outcome.status is ProcessStatus.SKIP:
            self.skipped += 1
        elif outcome.failure is not None:
            self.failed += 1
        else:
            self.succeeded += 1

        step = self.settings.progress_step
        if self.on_progress is not None and self.processed % step == 0:
            self.on_progress(self.progress())

    def _next_row(self, rows: Iterator[tuple[int, list[Any]]]) -> tuple[int, list[Any]] | None:
        try:
            return next(rows, None)
        except READ_ERRORS as e:
            raise SourceReadError(
                f"{self.path}: reading failed after {self.processed} row(s): {type(e).__name__}: {e}"
            ) from e

    def _generate(self) -> Iterator[RowOutcome[T]]:
        with open_row_source(
            self.path,
            sheet_index=self.sheet_index,
            has_header=self.has_header,
            start_row=self.start_row,
            settings=self.settings,
        ) as source:
            yield from self._run(source)

    def _run(self, source: RowSource) -> Iterator[RowOutcome[T]]:
        self.headers = list(source.headers)
        self.total_rows = source.total_rows
        pipeline = self._build_pipeline(self.headers)

        logger.info(
            "import started: %s sheet %d",
            self.path.name,
            self.sheet_index,
            extra={"data": {"path": str(self.path), "sheet": source.sheet_name, "total_rows": source.total_rows}},
        )

        while True:
            ## -- cancellation is only observed between rows
            if self.cancel is not None and self.cancel.is_set():
                self.cancelled = True
                logger.warning("import cancelled after %d row(s): %s", self.processed, self.path.name)
                break

            item = self._next_row(source.rows)
            if item is None:
                break
            row_index, raw_row = item

            outcome = pipeline.process(row_index, raw_row)
            self._count(outcome)
            yield outcome

            ## -- halting outcomes: nothing after this row is read
            if outcome.status is ProcessStatus.ABORT:
                self.aborted = True
                logger.info("import aborted by validation at row %d: %s", row_index, self.path.name)
                break
            if outcome.failure is not None and self.stop_on_first_error:
                self.stopped_on_error = True
                break

        # final snapshot, unless the last step already reported it
        if self.on_progress is not None and (self.processed == 0 or self.processed % self.settings.progress_step):
            self.on_progress(self.progress())

        logger.info(
            "import finished: %s processed=%d succeeded=%d failed=%d skipped=%d",
            self.path.name,
            self.processed,
            self.succeeded,
            self.failed,
            self.skipped,
            extra={"data": {"aborted": self.aborted, "cancelled": self.cancelled}},
        )


## -- preconditions

def _check_source(path: Path, sheet_index: int) -> None:
    check_input_path(path)
    if sheet_index != 0:
        count = sheet_count(path)
        if not 0 <= sheet_index < count:
            raise SheetIndexError(sheet_index, count)


def _batch(
    static: Mapping[str, Any] | None,
    dynamic: Mapping[str, DynamicValue] | None,
) -> BatchProperties:
    return BatchProperties(static=dict(static or {}), dynamic=dict(dynamic or {}))


def _typed_specs(specs: Sequence[ColumnSpec], materializer: TypedMaterializer[Any]) -> list[ColumnSpec]:
    kept: list[ColumnSpec] = []
    for spec in specs:
        if materializer.resolve_field(spec.target_field) is None:
            logger.warning(
                "mapping entry %r -> %r dropped: %s has no such field",
                spec.source_name,
                spec.target_field,
                materializer.owner.__name__,
            )
            continue
        kept.append(spec)
    return kept


## -- public API

def iter_import_results(
    file_path: str | Path,
    column_mapping: ColumnMappingInput = None,
    *,
    target_type: type[T] | None = None,
    sheet_index: int = 0,
    batch_static: Mapping[str, Any] | None = None,
    batch_dynamic: Mapping[str, DynamicValue] | None = None,
    overrides_source: bool = False,
    on_created: CreatedCallback[Any] | None = None,
    on_validating: ValidatingCallback[Any] | None = None,
    stop_on_first_error: bool = False,
    unmapped_field_name: str | None = None,
    sensitive_field_names: Sequence[str] | None = None,
    has_header: bool = True,
    start_row: int = 0,
    strict_headers: bool = False,
    cancel: threading.Event | None = None,
    on_progress: ProgressCallback | None = None,
    accessor_cache: AccessorCache | None = None,
    settings: Settings | None = None,
) -> ImportStream[Any]:
    """
    Streaming form of `import_typed` / `import_dynamic`.

    With `target_type` the records are instances of that type, otherwise
    `dict`s. Configuration problems raise here, before the file is read;
    column resolution happens once the header row has been read.
    """
    path = Path(file_path)
    settings = settings or get_settings()
    _check_source(path, sheet_index)
    if start_row < 0:
        raise ConfigurationError(f"start_row must be >= 0, got {start_row}")

    specs = normalize_column_specs(column_mapping)
    sensitive = settings.sensitive_fields if sensitive_field_names is None else tuple(sensitive_field_names)
    materializer: Materializer[Any]

    if target_type is not None:
        if not specs:
            raise ConfigurationError("a column mapping is required for typed imports")
        if not is_constructible(target_type):
            raise ConfigurationError(f"{target_type.__name__} cannot be constructed without arguments")
        materializer = TypedMaterializer(target_type, accessor_cache or default_accessor_cache())
        specs = _typed_specs(specs, materializer)
        if not specs:
            raise ConfigurationError(f"no mapping entry targets a field of {target_type.__name__}")
    else:
        materializer = RecordMaterializer(specs)

    batch = _batch(batch_static, batch_dynamic)

    def build_pipeline(headers: list[str]) -> RowPipeline[Any]:
        nonlocal materializer
        resolved = specs
        if not resolved:
            # dynamic import without a mapping: header name = field name
            resolved = identity_specs(headers)
            materializer = RecordMaterializer(resolved)
        plan = resolve_columns(headers, resolved, strict_headers=strict_headers)
        return RowPipeline(
            plan,
            materializer,
            batch=batch,
            overrides_source=overrides_source,
            unmapped_field_name=unmapped_field_name,
            sensitive_field_names=sensitive,
            on_validating=on_validating,
            on_created=on_created,
        )

    return ImportStream(
        path,
        build_pipeline,
        sheet_index=sheet_index,
        has_header=has_header,
        start_row=start_row,
        settings=settings,
        stop_on_first_error=stop_on_first_error,
        cancel=cancel,
        on_progress=on_progress,
    )


def collect_results(stream: ImportStream[T]) -> ImportResult[T]:
    """
    Drain `stream` into an `ImportResult`.

    Raises `RowImportError` for the first failed row when the stream was
    opened with `stop_on_first_error`. `SourceReadError` gets the partial
    result attached before it propagates.
    """
    result: ImportResult[T] = ImportResult()
    with stream:
        try:
            for outcome in stream:
                result.add(outcome)
                if outcome.status is ProcessStatus.FAIL and stream.stop_on_first_error and outcome.failure is not None:
                    raise RowImportError(outcome.failure, result)
        except SourceReadError as e:
            e.result = result
            raise

    result.aborted = stream.aborted
    result.cancelled = stream.cancelled
    return result


def import_typed(
    file_path: str | Path,
    target_type: type[T],
    column_mapping: ColumnMappingInput,
    **options: Any,
) -> ImportResult[T]:
    """
    Import one sheet into instances of `target_type`.

    `target_type` is built with `target_type()` and filled field by field.
    See `iter_import_results` for the keyword options.
    """
    stream = iter_import_results(file_path, column_mapping, target_type=target_type, **options)
    return collect_results(stream)


def import_dynamic(
    file_path: str | Path,
    column_mapping: ColumnMappingInput = None,
    **options: Any,
) -> ImportResult[dict[str, Any]]:
    """Import one sheet into `dict` records. Without a mapping every header becomes a key."""
    if "target_type" in options:
        raise TypeError("import_dynamic() does not take target_type, use import_typed()")
    stream = iter_import_results(file_path, column_mapping, **options)
    return collect_results(stream)
