from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from sheet_import.parsing.coercion import coerce
from sheet_import.parsing.types import FaultCode, RowFailure

from .materializers import Materializer

logger = logging.getLogger(__name__)

DynamicValue = Callable[[int], Any]


@dataclass(frozen=True)
class BatchProperties:
    """Values written to every record of an import, on top of the mapped columns."""
    static: Mapping[str, Any] = field(default_factory=dict)
    dynamic: Mapping[str, DynamicValue] = field(default_factory=dict)     # called with the row index

    @property
    def is_empty(self) -> bool:
        return not self.static and not self.dynamic


def _assign(
    record: Any,
    materializer: Materializer[Any],
    name: str,
    value: Any,
    *,
    row_index: int,
    failure: RowFailure,
) -> None:
    target = materializer.resolve_field(name)
    if target is None:
        failure.add(FaultCode.unknown_field, f"{name}: row {row_index}: batch property has no matching field")
        return

    coerced = coerce(value, materializer.field_type(target), field=target, row_index=row_index)
    if coerced.fault:
        failure.add(coerced.code or FaultCode.batch_property, coerced.fault)

    try:
        materializer.assign(record, target, coerced.value)
    except Exception as e:
        failure.add(FaultCode.batch_property, f"{target}: row {row_index}: cannot assign batch value: {e}")
        if failure.cause is None:
            failure.cause = e


def apply_batch_properties(
    record: Any,
    materializer: Materializer[Any],
    batch: BatchProperties,
    *,
    row_index: int,
    failure: RowFailure,
) -> None:
    """
    Write static values, then evaluated dynamic values, into `record`.

    Problems are appended to `failure` and never raised: an unknown field,
    an evaluator that raises, a value that does not coerce to the field type.
    """
    for name, value in batch.static.items():
        _assign(record, materializer, name, value, row_index=row_index, failure=failure)

    for name, evaluate in batch.dynamic.items():
        try:
            value = evaluate(row_index)
        except Exception as e:
            logger.debug("batch evaluator %r raised on row %d", name, row_index, exc_info=True)
            failure.add(
                FaultCode.batch_property,
                f"{name}: row {row_index}: batch evaluator raised {type(e).__name__}: {e}",
            )
            if failure.cause is None:
                failure.cause = e
            continue
        _assign(record, materializer, name, value, row_index=row_index, failure=failure)
