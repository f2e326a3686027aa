from __future__ import annotations

import json
import logging
import sys

from meritpoints.core.logging import JsonFormatter


def _record(message: str, *args, level: int = logging.WARNING, **extra) -> logging.LogRecord:
    record = logging.LogRecord("meritpoints.test", level, __file__, 1, message, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_known_fields_only():
    record = _record("registration rejected: %s", "activity full", activity_id="a1", student_id="S1", unrelated="x")

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "WARNING"
    assert payload["message"] == "registration rejected: activity full"
    assert payload["activity_id"] == "a1"
    assert payload["student_id"] == "S1"
    assert "unrelated" not in payload


def test_json_formatter_renders_exceptions():
    record = _record("failed", level=logging.ERROR)
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record.exc_info = sys.exc_info()

    payload = json.loads(JsonFormatter().format(record))

    assert "RuntimeError: boom" in payload["exception"]
