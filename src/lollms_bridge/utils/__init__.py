"""Utility functions for error handling and logging."""

from lollms_bridge.utils.errors import (
    ApiError,
    ConfigurationError,
    ErrorCode,
    LollmsBridgeError,
    NoImageDataError,
    RequestAbortedError,
    RequestTimeoutError,
    ResponseFormatError,
    StreamError,
    StreamIncompleteError,
    classify_exception,
    extract_error_message,
    log_error,
    truncate_error,
)
from lollms_bridge.utils.logging import call_context, configure_logging

__all__ = [
    "ApiError",
    "ConfigurationError",
    "ErrorCode",
    "LollmsBridgeError",
    "NoImageDataError",
    "RequestAbortedError",
    "RequestTimeoutError",
    "ResponseFormatError",
    "StreamError",
    "StreamIncompleteError",
    "call_context",
    "classify_exception",
    "configure_logging",
    "extract_error_message",
    "log_error",
    "truncate_error",
]
