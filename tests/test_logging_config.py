"""Tests for logging configuration, formatters and logger helpers."""

import io
import json
import logging
import sys

import pytest

from notifier.logging import ComponentLoggerAdapter, get_logger, mask_email
from notifier.logging.config import (
    SERVICE_NAME,
    ContextualFilter,
    JSONFormatter,
    KeyValueFormatter,
    configure_logging,
)
from notifier.logging.context import log_context


@pytest.fixture
def make_record():
    """Build LogRecords the way a logger call with extra would."""
    logger = logging.getLogger("tests.logging")

    def _make(message="Notification sent", level=logging.INFO, extra=None, exc_info=None):
        return logger.makeRecord("notifier.test", level, "test.py", 1, message, (), exc_info, extra=extra)

    return _make


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way it was after configure_logging()."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_json_formatter_mandatory_fields(make_record):
    """Test JSONFormatter emits one JSON object with the base fields."""
    log_obj = json.loads(JSONFormatter().format(make_record()))

    assert log_obj["level"] == "INFO"
    assert log_obj["logger"] == "notifier.test"
    assert log_obj["message"] == "Notification sent"
    assert log_obj["timestamp"].endswith("Z")
    assert len(log_obj["timestamp"]) == len("2025-11-04T12:00:00.000Z")


def test_json_formatter_extra_fields(make_record):
    """Test event names and typed extras survive serialization."""
    record = make_record(
        extra={"event": "batch.completed", "processed": 5, "retryable": False, "failed_ids": ["m-3"]}
    )

    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["event"] == "batch.completed"
    assert log_obj["processed"] == 5
    assert log_obj["retryable"] is False
    assert log_obj["failed_ids"] == ["m-3"]


def test_json_formatter_stringifies_unknown_types(make_record):
    """Test objects JSON can't encode are rendered with str()."""
    log_obj = json.loads(JSONFormatter().format(make_record(extra={"error_type": ValueError("boom")})))

    assert log_obj["error_type"] == "boom"


def test_json_formatter_exception(make_record):
    """Test exception tracebacks are included."""
    try:
        raise RuntimeError("socket closed")
    except RuntimeError:
        record = make_record(level=logging.ERROR, exc_info=sys.exc_info())

    log_obj = json.loads(JSONFormatter().format(record))

    assert "RuntimeError: socket closed" in log_obj["exc_info"]


def test_contextual_filter_adds_service_and_context(make_record):
    """Test the filter stamps service, environment and log_context fields."""
    record = make_record()

    with log_context(message_id="m-1", notification_type="WELCOME"):
        assert ContextualFilter(environment="staging").filter(record) is True

    assert record.service == SERVICE_NAME
    assert record.environment == "staging"
    assert record.message_id == "m-1"
    assert record.notification_type == "WELCOME"


def test_explicit_extra_wins_over_context(make_record):
    """Test a field passed via extra is not overwritten by the context."""
    record = make_record(extra={"message_id": "explicit"})

    with log_context(message_id="from-context"):
        ContextualFilter().filter(record)

    assert record.message_id == "explicit"


def test_contextual_filter_masks_recipients(make_record):
    record = make_record(extra={"recipient": "ana@example.com"})

    with log_context(user_email="bob@example.com"):
        ContextualFilter().filter(record)

    assert record.recipient == "a**@example.com"
    assert record.user_email == "b**@example.com"


def test_key_value_formatter(make_record):
    """Test extras are appended sorted, with quoting and null/bool rendering."""
    formatter = KeyValueFormatter("%(levelname)s %(message)s")
    record = make_record(
        extra={"event": "template.fetched", "cache_hit": True, "reason": "first use", "bucket": None}
    )
    ContextualFilter().filter(record)

    output = formatter.format(record)

    assert output == 'INFO Notification sent bucket=null cache_hit=true event=template.fetched reason="first use"'
    assert "service=" not in output


def test_configure_logging_invalid_level(restore_root_logger):
    with pytest.raises(ValueError, match="Invalid log level"):
        configure_logging(level="LOUD")


def test_configure_logging_invalid_format(restore_root_logger):
    with pytest.raises(ValueError, match="Invalid log format"):
        configure_logging(format_type="xml")


def test_configure_logging_json_stream(restore_root_logger):
    """Test JSON output reaches the configured stream with context fields."""
    stream = io.StringIO()
    configure_logging(level="DEBUG", format_type="json", environment="test", stream=stream)

    with log_context(notification_id="rec-1"):
        get_logger("notifier.test", component="orchestrator").info(
            "Delivered", extra={"event": "notification.sent"}
        )

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert lines[0]["event"] == "logging.configured"
    delivered = lines[-1]
    assert delivered["message"] == "Delivered"
    assert delivered["component"] == "orchestrator"
    assert delivered["notification_id"] == "rec-1"
    assert delivered["environment"] == "test"
    assert logging.getLogger().level == logging.DEBUG


def test_configure_logging_quiets_boto(restore_root_logger):
    """Test AWS client loggers stay at INFO or above."""
    configure_logging(level="DEBUG", stream=io.StringIO())

    assert logging.getLogger("botocore").level == logging.INFO


def test_configure_logging_replaces_handlers(restore_root_logger):
    """Test repeated configuration leaves exactly one handler."""
    configure_logging(stream=io.StringIO())
    configure_logging(stream=io.StringIO())

    assert len(logging.getLogger().handlers) == 1


def test_get_logger_with_component():
    """Test component loggers merge their field with per-call extra."""
    adapter = get_logger("notifier.test", component="ingress")

    assert isinstance(adapter, ComponentLoggerAdapter)
    _, kwargs = adapter.process("msg", {"extra": {"event": "batch.started"}})
    assert kwargs["extra"] == {"component": "ingress", "event": "batch.started"}


def test_get_logger_without_component():
    assert isinstance(get_logger("notifier.test"), logging.Logger)


@pytest.mark.parametrize(
    "address,expected",
    [
        ("ana@example.com", "a**@example.com"),
        ("x@example.com", "x*@example.com"),
        ("not-an-email", "not-an-email"),
        (None, ""),
    ],
)
def test_mask_email(address, expected):
    assert mask_email(address) == expected
