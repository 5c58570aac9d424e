"""Tests for structured logging and request_id propagation."""

import json
import logging

import pytest

from nextspark.core import logging as app_logging


def _record(msg="hello", **attrs):
    record = logging.LogRecord("nextspark.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


@pytest.mark.parametrize(
    "latency,bucket",
    [(None, "unknown"), (3, "<10ms"), (42, "10-100ms"), (250, "100-500ms"), (999, "500-1000ms"), (1500, ">=1000ms")],
)
def test_latency_buckets(latency, bucket):
    assert app_logging.latency_bucket_ms(latency) == bucket


def test_context_filter_reads_context_vars():
    rid_token = app_logging.request_id_ctx_var.set("rid-123")
    team_token = app_logging.team_id_ctx_var.set("team-9")
    try:
        record = _record()
        assert app_logging.RequestContextFilter().filter(record) is True
        assert record.request_id == "rid-123"
        assert record.team_id == "team-9"
    finally:
        app_logging.request_id_ctx_var.reset(rid_token)
        app_logging.team_id_ctx_var.reset(team_token)


def test_context_filter_keeps_explicit_values():
    record = _record(request_id="explicit", team_id="team-explicit")
    app_logging.RequestContextFilter().filter(record)
    assert record.request_id == "explicit"
    assert record.team_id == "team-explicit"


def test_json_formatter_includes_structured_fields():
    record = _record(request_id="rid-1", team_id="team-1", error_code="QUOTA_EXCEEDED", unrelated="skip")
    payload = json.loads(app_logging.JsonFormatter().format(record))
    assert payload["message"] == "hello"
    assert payload["level"] == "INFO"
    assert payload["request_id"] == "rid-1"
    assert payload["team_id"] == "team-1"
    assert payload["error_code"] == "QUOTA_EXCEEDED"
    assert "unrelated" not in payload
    assert payload["timestamp"].endswith("Z")


def test_pretty_formatter_shows_request_id():
    line = app_logging.PrettyFormatter().format(_record(request_id="rid-9"))
    assert "[rid=rid-9]" in line
    assert line.endswith("hello")


def test_configure_logging_picks_formatter():
    logger = logging.getLogger("nextspark")
    original = list(logger.handlers)
    try:
        app_logging.configure_logging("production")
        assert isinstance(logger.handlers[0].formatter, app_logging.JsonFormatter)
        app_logging.configure_logging("development")
        assert isinstance(logger.handlers[0].formatter, app_logging.PrettyFormatter)
    finally:
        logger.handlers = original


def test_pretty_formatter_shows_team():
    line = app_logging.PrettyFormatter().format(_record(request_id="rid-9", team_id="team-1"))
    assert "[rid=rid-9] [team=team-1] hello" in line


def test_configure_logging_honours_level():
    logger = logging.getLogger("nextspark")
    original_handlers, original_level = list(logger.handlers), logger.level
    try:
        app_logging.configure_logging("development", "debug")
        assert logger.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        logger.handlers = original_handlers
        logger.setLevel(original_level)
