"""Tests for structured logging configuration."""

from __future__ import annotations

import json
import logging

from core.logging_config import JSONFormatter, get_logger, reset_request_id, set_request_id, setup_logging


def _record(msg="hello %s", args=("world",), level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="test", level=level, pathname="test.py",
        lineno=1, msg=msg, args=args, exc_info=exc_info
    )


def test_json_formatter_outputs_valid_json():
    parsed = json.loads(JSONFormatter().format(_record()))
    assert parsed["message"] == "hello world"
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "test"
    assert "timestamp" in parsed
    assert "request_id" not in parsed


def test_json_formatter_includes_exception():
    try:
        raise ValueError("test error")
    except ValueError:
        import sys
        exc_info = sys.exc_info()
    parsed = json.loads(JSONFormatter().format(_record("fail", (), logging.ERROR, exc_info)))
    assert parsed["exception"]["type"] == "ValueError"
    assert parsed["exception"]["message"] == "test error"


def test_json_formatter_groups_context_extras():
    record = _record("schedule_mutation_applied", ())
    record.ctx_class_id = "C1"
    record.ctx_affected = 4
    parsed = json.loads(JSONFormatter().format(record))
    assert parsed["context"] == {"class_id": "C1", "affected": 4}


def test_json_formatter_includes_request_id():
    token = set_request_id("abc123")
    try:
        parsed = json.loads(JSONFormatter().format(_record()))
    finally:
        reset_request_id(token)
    assert parsed["request_id"] == "abc123"


def test_get_logger_returns_named_logger():
    log = get_logger("my.module")
    assert log.name == "my.module"
    assert isinstance(log, logging.Logger)


def test_setup_logging_idempotent():
    root = logging.getLogger()
    initial_count = len(root.handlers)
    setup_logging()
    setup_logging()
    # Should not add duplicate handlers
    assert len(root.handlers) <= initial_count + 1
