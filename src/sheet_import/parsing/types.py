from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Mapping, TypeVar

T = TypeVar("T")


class FaultCode(str, Enum):
    """Typed failure classifications."""
    missing_required = "missing_required"
    invalid_int = "invalid_int"
    invalid_numeric = "invalid_numeric"
    invalid_timestamp = "invalid_timestamp"     # also used for date parsing errors
    invalid_bool = "invalid_bool"
    invalid_enum = "invalid_enum"
    invalid_uuid = "invalid_uuid"
    invalid_value = "invalid_value"             # generic constructor fallback
    unknown_field = "unknown_field"
    batch_property = "batch_property"
    callback_error = "callback_error"
    row_error = "row_error"                     # exception caught at the row boundary
    validation_failed = "validation_failed"
    aborted = "aborted"


class ProcessStatus(Enum):
    """Outcome a validation callback hands back to the row pipeline."""
    CONTINUE = "continue"   # keep the row if nothing went wrong
    SKIP = "skip"           # drop the row, counted nowhere
    FAIL = "fail"           # record the row as failed, keep going
    ABORT = "abort"         # record the row as failed, stop the stream


@dataclass(slots=True)
class RowFailure:
    """
    Mutable per-row failure accumulator.

    Handed to the validation callback so it can add its own message or cause.
    Frozen into an `ImportFailure` once the row is classified.
    """
    row_index: int
    messages: list[str] = field(default_factory=list)
    codes: list[FaultCode] = field(default_factory=list)
    cause: BaseException | None = None
    error_message: str | None = None    # explicit message, wins over `messages`

    def add(self, code: FaultCode, message: str) -> None:
        self.codes.append(code)
        self.messages.append(message)

    @property
    def has_errors(self) -> bool:
        return bool(self.messages) or self.error_message is not None or self.cause is not None

    def render(self) -> str | None:
        if self.error_message:
            return self.error_message
        if self.messages:
            return "; ".join(self.messages)
        if self.cause is not None:
            return f"{type(self.cause).__name__}: {self.cause}"
        return None

    def freeze(self, row_values: Mapping[str, Any], *, default_code: FaultCode, default_message: str) -> "ImportFailure":
        return ImportFailure(
            row_index=self.row_index,
            error_message=self.render() or default_message,
            cause=self.cause,
            row_values=dict(row_values),
            reason_code=self.codes[0] if self.codes else default_code,
        )


@dataclass(frozen=True, slots=True)
class ImportFailure:
    """A row that could not be trusted as a successful import."""
    row_index: int                      # 0-based data row index, header not counted
    error_message: str | None
    cause: BaseException | None
    row_values: Mapping[str, Any]       # header -> raw value snapshot at failure time
    reason_code: FaultCode | None = None


@dataclass(frozen=True)
class RowOutcome(Generic[T]):
    """What happened to one row. Yielded by the streaming API."""
    row_index: int
    status: ProcessStatus
    record: T | None = None
    failure: ImportFailure | None = None
    notes: tuple[str, ...] = ()         # non-fatal problems, e.g. a raising `on_created`

    @property
    def succeeded(self) -> bool:
        return self.status is ProcessStatus.CONTINUE and self.failure is None


@dataclass(frozen=True, slots=True)
class ImportProgress:
    """Progress snapshot passed to `on_progress`."""
    processed: int
    succeeded: int
    failed: int
    skipped: int
    total_rows: int | None      # data rows the source reports, when known


@dataclass
class ImportResult(Generic[T]):
    """Successful items and the failure ledger, both in source row order."""
    items: list[T] = field(default_factory=list)
    failures: list[ImportFailure] = field(default_factory=list)
    skipped_count: int = 0
    total_rows: int = 0         # rows read from the source
    aborted: bool = False
    cancelled: bool = False

    @property
    def success_count(self) -> int:
        return len(self.items)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def add(self, outcome: RowOutcome[T]) -> None:
        """Route one row outcome into the aggregate."""
        self.total_rows += 1
        if outcome.status is ProcessStatus.SKIP:
            self.skipped_count += 1
        elif outcome.failure is not None:
            self.failures.append(outcome.failure)
        elif outcome.record is not None:
            self.items.append(outcome.record)
