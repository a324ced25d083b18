from __future__ import annotations

import json
import logging

from discovery import logging_manager as log_mgr


def _record(message: str, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("discovery.test", logging.WARNING, __file__, 1, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_renders_known_fields_and_extras():
    record = _record("catalog down", event="catalog.unavailable", source="google", attempt=2)
    payload = json.loads(log_mgr.JSONLogFormatter().format(record))

    assert payload["message"] == "catalog down"
    assert payload["level"] == "WARNING"
    assert payload["event"] == "catalog.unavailable"
    assert payload["source"] == "google"
    assert payload["extra"] == {"attempt": 2}
    assert "status" not in payload


def test_context_values_are_attached_and_restored():
    context_filter = log_mgr.LogContextFilter()

    with log_mgr.log_context(correlation_id="req-1", caller="1.2.3.4", ignored=None):
        inside = _record("inside")
        context_filter.filter(inside)
    outside = _record("outside")
    context_filter.filter(outside)

    assert inside.correlation_id == "req-1"
    assert inside.caller == "1.2.3.4"
    assert not hasattr(inside, "ignored")
    assert not hasattr(outside, "correlation_id")


def test_parse_log_level():
    assert log_mgr.parse_log_level("debug") == logging.DEBUG
    assert log_mgr.parse_log_level(" Warning ") == logging.WARNING
    assert log_mgr.parse_log_level("chatty") == logging.INFO
    assert log_mgr.parse_log_level(logging.ERROR) == logging.ERROR
