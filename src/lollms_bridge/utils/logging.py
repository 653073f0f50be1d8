"""Structured logging setup with JSON format support."""

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator

# Context variable identifying the client call a log line belongs to
call_id_var: ContextVar[str | None] = ContextVar("call_id", default=None)

# Extra fields copied from log records into JSON output
EXTRA_FIELDS = (
    "operation",
    "backend",
    "url",
    "model",
    "stream",
    "status_code",
    "duration_ms",
    "error_code",
    "error_type",
)


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        call_id = call_id_var.get()
        if call_id:
            log_entry["call_id"] = call_id

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                value = getattr(record, key)
                if value is not None:
                    log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Text log formatter for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as text with call ID prefix."""
        formatted = super().format(record)
        call_id = call_id_var.get()
        if call_id:
            return f"[{call_id[:8]}] {formatted}"
        return formatted


def configure_logging(
    level: str = "INFO",
    format: str = "text",
) -> None:
    """Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format: Output format (json or text).
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@contextmanager
def call_context(call_id: str | None = None) -> Iterator[str]:
    """Tag log lines emitted inside the block with a call ID.

    Args:
        call_id: Explicit ID; a random one is generated when omitted.

    Yields:
        The call ID in effect.
    """
    cid = call_id or uuid.uuid4().hex
    token = call_id_var.set(cid)
    try:
        yield cid
    finally:
        call_id_var.reset(token)
