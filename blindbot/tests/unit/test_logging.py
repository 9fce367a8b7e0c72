"""
Unit tests for structured logging helpers
"""
import json
import logging
import sys

from blindbot.core.logging import ContextAdapter, JsonFormatter, ServiceNameFilter, get_logger


def make_record(**extra):
    record = logging.LogRecord("blindbot.test", logging.INFO, __file__, 10, "turn %s", ("done",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:

    def test_entry_fields(self):
        record = make_record(tenant_id="t-1", gate_state="rendered")
        ServiceNameFilter("blindbot").filter(record)

        entry = json.loads(JsonFormatter().format(record))

        assert entry["msg"] == "turn done"
        assert entry["level"] == "INFO"
        assert entry["service"] == "blindbot"
        assert entry["tenant_id"] == "t-1"
        assert entry["gate_state"] == "rendered"
        assert "duration_ms" not in entry

    def test_exception_is_included(self):
        try:
            raise ValueError("bad envelope")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        entry = json.loads(JsonFormatter().format(record))

        assert "ValueError: bad envelope" in entry["exc"]


class TestGetLogger:

    def test_plain_logger_without_context(self):
        assert isinstance(get_logger("blindbot.x"), logging.Logger)

    def test_defaults_to_caller_module(self):
        assert get_logger().name == __name__

    def test_context_is_merged_into_extra(self):
        adapter = get_logger("blindbot.x", tenant_id="t-1")

        msg, kwargs = adapter.process("hello", {"extra": {"gate_state": "blocked"}})

        assert isinstance(adapter, ContextAdapter)
        assert kwargs["extra"] == {"tenant_id": "t-1", "gate_state": "blocked"}
