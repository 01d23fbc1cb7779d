from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sheet_import.parsing.accessors import AccessorCache
from sheet_import.pipeline.materializers import RecordMaterializer, TypedMaterializer
from sheet_import.pipeline.unmapped import (
    REDACTION_MARKER,
    capture_unmapped,
    serialize_unmapped,
    store_unmapped,
)


@dataclass
class Merchant:
    name: str = ""
    raw_data_json: Optional[str] = None
    extra_count: int = 0


def test_sensitive_columns_keep_their_key_but_lose_their_value() -> None:
    side = capture_unmapped(
        ["Name", "Password", "City"],
        ["Ada", "hunter2", "London"],
        consumed={0},
        sensitive=["password"],
    )
    assert side == {"Password": REDACTION_MARKER, "City": "London"}


def test_serialization_is_deterministic() -> None:
    text = serialize_unmapped(
        {"b": 1, "a": datetime(2024, 1, 2, 3, 4, 5), "c": "中文", "d": Decimal("1.50"), "e": None}
    )
    assert text == '{"a": "2024-01-02 03:04:05", "b": 1, "c": "中文", "d": "1.50", "e": null}'
    assert serialize_unmapped({"y": 1, "x": 2}) == serialize_unmapped({"x": 2, "y": 1})


def test_typed_records_store_only_in_text_fields(accessor_cache: AccessorCache) -> None:
    m = TypedMaterializer(Merchant, accessor_cache)
    record = m.create()

    assert store_unmapped(record, m, "RAW_DATA_JSON", {"City": "London"}, row_index=0)
    assert json.loads(record.raw_data_json) == {"City": "London"}

    assert not store_unmapped(record, m, "extra_count", {"City": "London"}, row_index=0)
    assert record.extra_count == 0

    assert not store_unmapped(record, m, "missing", {"City": "London"}, row_index=0)
    assert not store_unmapped(record, m, None, {"City": "London"}, row_index=0)


def test_dict_records_always_take_the_side_map() -> None:
    m = RecordMaterializer()
    record = m.create()
    assert store_unmapped(record, m, "raw", {"k": "v"}, row_index=0)
    assert record == {"raw": '{"k": "v"}'}
