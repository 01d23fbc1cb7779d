from __future__ import annotations

import io
import json
import logging
import sys

from sheet_import.logging_config import JsonFormatter, configure_logging


def test_json_formatter_emits_one_object_with_structured_data() -> None:
    record = logging.LogRecord(
        name="sheet_import.pipeline.rows",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="row %d failed",
        args=(3,),
        exc_info=None,
    )
    record.data = {"row_index": 3}

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "warning"
    assert payload["logger"] == "sheet_import.pipeline.rows"
    assert payload["message"] == "row 3 failed"
    assert payload["data"] == {"row_index": 3}
    assert payload["ts"].endswith("Z")


def test_json_formatter_includes_exception_details() -> None:
    try:
        raise ValueError("bad cell")
    except ValueError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", None, sys.exc_info())

    payload = json.loads(JsonFormatter().format(record))
    assert payload["exc_type"] == "ValueError"
    assert payload["exc"] == "bad cell"
    assert "Traceback" in payload["traceback"]


def test_configure_logging_replaces_its_handler() -> None:
    stream = io.StringIO()
    configure_logging("DEBUG", "json", stream=stream)
    logger = configure_logging("DEBUG", "json", stream=stream)

    assert len(logger.handlers) == 1
    logging.getLogger("sheet_import.parsing.columns").debug("hello")

    line = stream.getvalue().strip().splitlines()[-1]
    assert json.loads(line)["message"] == "hello"
