from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Collection, Iterable, Mapping, Sequence

from .materializers import Materializer

logger = logging.getLogger(__name__)

# replaces sensitive values, the key itself stays in the map
REDACTION_MARKER = "***REDACTED***"


def capture_unmapped(
    headers: Sequence[str],
    raw_row: Sequence[Any],
    consumed: Collection[int],
    sensitive: Iterable[str] = (),
) -> dict[str, Any]:
    """Every column the plan did not consume, keyed by header, sensitive values masked."""
    masked = {s.strip().lower() for s in sensitive if s and s.strip()}
    out: dict[str, Any] = {}
    for i, header in enumerate(headers):
        if i in consumed:
            continue
        value = raw_row[i] if i < len(raw_row) else None
        out[header] = REDACTION_MARKER if header.lower() in masked else value
    return out


def _json_default(v: Any) -> Any:
    if isinstance(v, datetime):
        return v.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(v, date):
        return v.isoformat()
    if isinstance(v, Decimal):
        return str(v)
    if isinstance(v, Enum):
        return v.name
    return str(v)


def serialize_unmapped(unmapped: Mapping[str, Any]) -> str:
    return json.dumps(unmapped, sort_keys=True, ensure_ascii=False, default=_json_default)


def store_unmapped(
    record: Any,
    materializer: Materializer[Any],
    field_name: str | None,
    unmapped: Mapping[str, Any],
    *,
    row_index: int,
) -> bool:
    """
    Store the serialized side map on `record`. Returns whether anything was stored.

    A missing or non-text destination field means the map is discarded.
    """
    if not field_name or not field_name.strip():
        return False

    target = materializer.resolve_field(field_name)
    if target is None or not materializer.accepts_text(target):
        logger.debug(
            "row %d: unmapped data discarded, %r is not a writable text field",
            row_index,
            field_name,
        )
        return False

    materializer.assign(record, target, serialize_unmapped(unmapped))
    return True
