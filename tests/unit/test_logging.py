from __future__ import annotations

import json
import logging

from rowmap.utils.logging import JsonFormatter, _json_formatter, configure_logging

EXPECTED_RECORD_ID = 7
EXPECTED_COLUMNS = 11


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.record_id = EXPECTED_RECORD_ID
    record.table = "user_account"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["record_id"] == EXPECTED_RECORD_ID
    assert payload["table"] == "user_account"
    assert "lineno" not in payload


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"columns": EXPECTED_COLUMNS}

    payload = json.loads(_json_formatter(record))

    assert payload["columns"] == EXPECTED_COLUMNS


def test_json_formatter_stringifies_unserialisable_values() -> None:
    record = _record()
    record.outcome = object()

    payload = json.loads(JsonFormatter().format(record))

    assert payload["outcome"].startswith("<object")


def test_configure_logging_installs_json_handler() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging(level="WARNING", json_logs=True)
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
