"""Tests for structured logging."""

import json
import logging
import sys
from datetime import datetime

import pytest

from lollms_bridge.utils.logging import (
    JsonFormatter,
    TextFormatter,
    call_context,
    call_id_var,
    configure_logging,
)


def make_record(msg="Test message", level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


@pytest.fixture
def restore_root_logger():
    """Put back root handlers and levels changed by configure_logging."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    httpx_level = logging.getLogger("httpx").level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("httpx").setLevel(httpx_level)


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_log_format(self):
        """Test basic log formatting."""
        data = json.loads(JsonFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["message"] == "Test message"
        assert data["logger"] == "test"
        assert "call_id" not in data

    def test_timestamp_format(self):
        """Test timestamp is ISO 8601 with Z suffix."""
        data = json.loads(JsonFormatter().format(make_record()))

        assert data["timestamp"].endswith("Z")
        datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00"))

    def test_includes_call_id(self):
        """Test the call ID from context is included."""
        with call_context("call-1234"):
            data = json.loads(JsonFormatter().format(make_record()))
        assert data["call_id"] == "call-1234"

    def test_includes_extra_fields(self):
        """Test known extra fields are included and None values skipped."""
        record = make_record()
        record.operation = "chat"
        record.backend = "ollama"
        record.status_code = 401
        record.duration_ms = 1500
        record.model = None
        record.unrelated = "ignored"

        data = json.loads(JsonFormatter().format(record))

        assert data["operation"] == "chat"
        assert data["backend"] == "ollama"
        assert data["status_code"] == 401
        assert data["duration_ms"] == 1500
        assert "model" not in data
        assert "unrelated" not in data

    def test_includes_exception_info(self):
        """Test exception info is included."""
        try:
            raise ValueError("Test error")
        except ValueError:
            record = make_record(level=logging.ERROR, exc_info=sys.exc_info())

        data = json.loads(JsonFormatter().format(record))
        assert "ValueError" in data["exception"]


class TestTextFormatter:
    """Tests for TextFormatter."""

    def test_basic_format(self):
        """Test basic text formatting."""
        output = TextFormatter().format(make_record())

        assert "INFO" in output
        assert "Test message" in output
        assert not output.startswith("[")

    def test_includes_call_id_prefix(self):
        """Test the call ID is shortened and prefixed."""
        with call_context("abc12345deadbeef"):
            output = TextFormatter().format(make_record())
        assert output.startswith("[abc12345] ")


class TestCallContext:
    """Tests for call_context."""

    def test_generates_id(self):
        """Test a random ID is generated and reset afterwards."""
        with call_context() as call_id:
            assert call_id
            assert call_id_var.get() == call_id
        assert call_id_var.get() is None

    def test_ids_are_unique(self):
        """Test consecutive calls get different IDs."""
        with call_context() as first:
            pass
        with call_context() as second:
            pass
        assert first != second

    def test_nested_restores_outer(self):
        """Test leaving a nested context restores the outer ID."""
        with call_context("outer"):
            with call_context("inner"):
                assert call_id_var.get() == "inner"
            assert call_id_var.get() == "outer"


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_json_format(self, restore_root_logger):
        """Test JSON format configuration."""
        configure_logging(level="INFO", format="json")

        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, JsonFormatter)

    def test_text_format(self, restore_root_logger):
        """Test text format configuration."""
        configure_logging(level="INFO", format="text")

        assert isinstance(restore_root_logger.handlers[0].formatter, TextFormatter)

    def test_log_level_setting(self, restore_root_logger):
        """Test log level is set correctly."""
        configure_logging(level="debug", format="json")

        assert restore_root_logger.level == logging.DEBUG

    def test_quiets_http_libraries(self, restore_root_logger):
        """Test httpx logging is reduced to warnings."""
        configure_logging(level="DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING
