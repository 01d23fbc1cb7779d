"""
Per-row state machine.

INIT -> BATCH_PRE -> COLUMN_MAP -> BATCH_POST -> UNMAPPED_CAPTURE -> VALIDATE
and from there one of SUCCESS, SKIPPED, FAILED, ABORTED.

Conversion problems are collected on a `RowFailure` while the row keeps
materializing; the validation callback sees them and has the last word,
except that CONTINUE with collected faults still fails the row.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Generic, Mapping, Sequence, TypeVar

from sheet_import.parsing.coercion import coerce
from sheet_import.parsing.columns import ColumnBinding, ColumnPlan
from sheet_import.parsing.primitives import is_blank
from sheet_import.parsing.types import FaultCode, ProcessStatus, RowFailure, RowOutcome

from .batch import BatchProperties, apply_batch_properties
from .materializers import Materializer
from .unmapped import capture_unmapped, store_unmapped

logger = logging.getLogger(__name__)

T = TypeVar("T")

ValidatingCallback = Callable[
    [int, T, Mapping[str, Any], Mapping[str, Any], RowFailure],
    "ProcessStatus | None",
]
CreatedCallback = Callable[[int, T], None]


class RowState(Enum):
    INIT = "init"
    BATCH_PRE = "batch_pre"
    COLUMN_MAP = "column_map"
    BATCH_POST = "batch_post"
    UNMAPPED_CAPTURE = "unmapped_capture"
    VALIDATE = "validate"


class RowPipeline(Generic[T]):
    """Turns one raw row into a `RowOutcome`. Built once per stream, reused for every row."""

    def __init__(
        self,
        plan: ColumnPlan,
        materializer: Materializer[T],
        *,
        batch: BatchProperties | None = None,
        overrides_source: bool = False,
        unmapped_field_name: str | None = None,
        sensitive_field_names: Sequence[str] = (),
        on_validating: ValidatingCallback[T] | None = None,
        on_created: CreatedCallback[T] | None = None,
    ) -> None:
        self.plan = plan
        self.materializer = materializer
        self.batch = batch or BatchProperties()
        self.overrides_source = overrides_source
        self.unmapped_field_name = unmapped_field_name
        self.sensitive_field_names = tuple(sensitive_field_names)
        self.on_validating = on_validating
        self.on_created = on_created

    ## -- states

    def _apply_batch(self, record: T, row_index: int, failure: RowFailure) -> None:
        if not self.batch.is_empty:
            apply_batch_properties(record, self.materializer, self.batch, row_index=row_index, failure=failure)

    def _map_column(self, record: T, binding: ColumnBinding, raw_row: Sequence[Any], row_index: int, failure: RowFailure) -> None:
        spec = binding.spec
        target = self.materializer.resolve_field(spec.target_field)
        if target is None:
            failure.add(FaultCode.unknown_field, f"{spec.target_field}: row {row_index}: no such field")
            return

        raw = None if binding.index is None else raw_row[binding.index]
        if is_blank(raw) and spec.default_value is not None:
            raw = spec.default_value

        if spec.required and is_blank(raw):
            failure.add(FaultCode.missing_required, f"{target}: row {row_index}: required value is missing")

        coerced = coerce(
            raw,
            self.materializer.field_type(target),
            field=target,
            row_index=row_index,
            format_pattern=spec.format_pattern,
        )
        if coerced.fault:
            failure.add(coerced.code or FaultCode.invalid_value, coerced.fault)
        self.materializer.assign(record, target, coerced.value)

    def _validate(
        self,
        row_index: int,
        record: T,
        row_values: Mapping[str, Any],
        unmapped: Mapping[str, Any],
        failure: RowFailure,
    ) -> ProcessStatus:
        if self.on_validating is None:
            return ProcessStatus.CONTINUE
        try:
            status = self.on_validating(row_index, record, row_values, unmapped, failure)
        except Exception as e:
            logger.debug("validation callback raised on row %d", row_index, exc_info=True)
            failure.cause = e
            failure.add(FaultCode.callback_error, f"row {row_index}: validation raised {type(e).__name__}: {e}")
            return ProcessStatus.FAIL

        if status is None:
            return ProcessStatus.CONTINUE
        if not isinstance(status, ProcessStatus):
            failure.add(FaultCode.callback_error, f"row {row_index}: validation returned {status!r}, not a ProcessStatus")
            return ProcessStatus.FAIL
        return status

    ## -- driver

    def process(self, row_index: int, raw_row: Sequence[Any]) -> RowOutcome[T]:
        failure = RowFailure(row_index=row_index)
        row_values = dict(zip(self.plan.headers, raw_row))

        state = RowState.INIT
        try:
            record = self.materializer.create()

            state = RowState.BATCH_PRE
            if not self.overrides_source:
                self._apply_batch(record, row_index, failure)

            state = RowState.COLUMN_MAP
            for binding in self.plan.bindings:
                self._map_column(record, binding, raw_row, row_index, failure)

            state = RowState.BATCH_POST
            if self.overrides_source:
                self._apply_batch(record, row_index, failure)

            state = RowState.UNMAPPED_CAPTURE
            unmapped = capture_unmapped(
                self.plan.headers, raw_row, self.plan.consumed, self.sensitive_field_names
            )
            store_unmapped(record, self.materializer, self.unmapped_field_name, unmapped, row_index=row_index)

            state = RowState.VALIDATE
            status = self._validate(row_index, record, row_values, unmapped, failure)
        except Exception as e:
            logger.debug("row %d raised during %s", row_index, state.value, exc_info=True)
            failure.cause = e
            failure.add(FaultCode.row_error, f"row {row_index}: {state.value} failed: {type(e).__name__}: {e}")
            return self._failed(row_index, ProcessStatus.FAIL, failure, row_values)

        if status is ProcessStatus.SKIP:
            return RowOutcome(row_index=row_index, status=ProcessStatus.SKIP)

        if status is ProcessStatus.CONTINUE and failure.has_errors:
            status = ProcessStatus.FAIL

        if status is not ProcessStatus.CONTINUE:
            return self._failed(row_index, status, failure, row_values)

        return self._succeeded(row_index, record)

    def _failed(
        self,
        row_index: int,
        status: ProcessStatus,
        failure: RowFailure,
        row_values: Mapping[str, Any],
    ) -> RowOutcome[T]:
        if status is ProcessStatus.ABORT:
            frozen = failure.freeze(
                row_values,
                default_code=FaultCode.aborted,
                default_message=f"row {row_index}: import aborted by validation",
            )
        else:
            frozen = failure.freeze(
                row_values,
                default_code=FaultCode.validation_failed,
                default_message=f"row {row_index}: rejected by validation",
            )
        logger.debug(
            "row %d %s: %s",
            row_index,
            status.value,
            frozen.error_message,
            extra={"data": {"row_index": row_index, "reason_code": getattr(frozen.reason_code, "value", None)}},
        )
        return RowOutcome(row_index=row_index, status=status, failure=frozen)

    def _succeeded(self, row_index: int, record: T) -> RowOutcome[T]:
        notes: tuple[str, ...] = ()
        if self.on_created is not None:
            try:
                self.on_created(row_index, record)
            except Exception as e:
                # the record stays imported
                logger.warning("row %d: on_created raised %s: %s", row_index, type(e).__name__, e, exc_info=True)
                notes = (f"row {row_index}: on_created raised {type(e).__name__}: {e}",)
        return RowOutcome(row_index=row_index, status=ProcessStatus.CONTINUE, record=record, notes=notes)
