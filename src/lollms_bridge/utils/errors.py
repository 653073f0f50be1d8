"""Error types and helpers for consistent failure reporting."""

import json
import logging
from enum import Enum
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Failure categories surfaced by the client."""

    # Local problems
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Transport problems
    NETWORK_ERROR = "NETWORK_ERROR"
    TLS_ERROR = "TLS_ERROR"

    # Server answered, but not usefully
    HTTP_ERROR = "HTTP_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    STREAM_ERROR = "STREAM_ERROR"

    # Request lifecycle
    ABORTED = "ABORTED"
    TIMEOUT = "TIMEOUT"

    INTERNAL_ERROR = "INTERNAL_ERROR"


# Maximum length for error details
MAX_ERROR_LENGTH = 500


class LollmsBridgeError(Exception):
    """Base class for errors raised by the client."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR


class ConfigurationError(LollmsBridgeError):
    """The backend configuration cannot be used to issue requests."""

    code = ErrorCode.CONFIGURATION_ERROR


class ApiError(LollmsBridgeError):
    """The server replied with a non-2xx status.

    Attributes:
        status_code: HTTP status code.
        reason: HTTP reason phrase.
        detail: Most specific message found in the response body, if any.
    """

    code = ErrorCode.HTTP_ERROR

    def __init__(
        self,
        status_code: int,
        reason: str,
        detail: str | None = None,
        backend: str = "Lollms",
    ):
        self.status_code = status_code
        self.reason = reason
        self.detail = detail
        message = f"{backend} API error: {status_code} {reason}."
        if detail:
            message += f"\n\nDetails: {truncate_error(detail)}"
        super().__init__(message)


class RequestTimeoutError(LollmsBridgeError):
    """The request did not finish within the configured timeout."""

    code = ErrorCode.TIMEOUT

    def __init__(self, timeout_seconds: float, backend: str = "Lollms"):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Request to {backend} API timed out after {timeout_seconds:g} seconds."
        )


class RequestAbortedError(LollmsBridgeError):
    """The caller cancelled the request."""

    code = ErrorCode.ABORTED

    def __init__(self, message: str = "Request was aborted"):
        super().__init__(message)


class ResponseFormatError(LollmsBridgeError):
    """A response body did not have the expected shape."""

    code = ErrorCode.INVALID_RESPONSE


class NoImageDataError(ResponseFormatError):
    """An image generation response carried no base64 image."""


class StreamError(LollmsBridgeError):
    """The server reported a failure inside a streamed response."""

    code = ErrorCode.STREAM_ERROR


class StreamIncompleteError(StreamError):
    """The stream ended before the server signalled completion.

    Attributes:
        partial_text: Text received before the stream ended.
    """

    def __init__(self, partial_text: str = ""):
        self.partial_text = partial_text
        super().__init__(
            "Stream ended before the server signalled completion "
            f"({len(partial_text)} characters received)."
        )


def truncate_error(error: str, max_length: int = MAX_ERROR_LENGTH) -> str:
    """Truncate error message if too long.

    Args:
        error: The error message.
        max_length: Maximum allowed length.

    Returns:
        Truncated error message.
    """
    if len(error) <= max_length:
        return error

    return error[: max_length - 3] + "..."


def extract_error_message(body: str) -> str | None:
    """Pick the most specific error message out of an error response body.

    Priority is ``error.message``, then ``error``, then the raw body.

    Args:
        body: Raw response text.

    Returns:
        The message, or None for an empty body.
    """
    body = body.strip()
    if not body:
        return None

    try:
        parsed = json.loads(body)
    except ValueError:
        return body

    if isinstance(parsed, dict) and parsed.get("error"):
        error = parsed["error"]
        if isinstance(error, dict):
            if error.get("message"):
                return str(error["message"])
            return json.dumps(error)
        return str(error)

    # FastAPI-style servers report failures under "detail"
    if isinstance(parsed, dict) and isinstance(parsed.get("detail"), str):
        return parsed["detail"]

    return body


def classify_exception(exc: BaseException) -> ErrorCode:
    """Classify an exception to an error code.

    Args:
        exc: The exception to classify.

    Returns:
        Appropriate error code.
    """
    if isinstance(exc, LollmsBridgeError):
        return exc.code

    # httpx wraps ssl.SSLError in ConnectError; the message is all that is left
    if isinstance(exc, httpx.ConnectError) and "CERTIFICATE" in str(exc).upper():
        return ErrorCode.TLS_ERROR

    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return ErrorCode.NETWORK_ERROR

    if isinstance(exc, ValueError):
        return ErrorCode.INVALID_RESPONSE

    return ErrorCode.INTERNAL_ERROR


def log_error(
    exc: BaseException,
    code: ErrorCode | None = None,
    **context: Any,
) -> None:
    """Log an error with context.

    Args:
        exc: The exception that occurred.
        code: Optional pre-classified error code.
        **context: Additional context to include in log.
    """
    if code is None:
        code = classify_exception(exc)

    log_extra = {
        "error_code": code.value,
        "error_type": type(exc).__name__,
        **context,
    }

    if code == ErrorCode.INTERNAL_ERROR:
        logger.exception("Internal error occurred", extra=log_extra)
    elif code == ErrorCode.TLS_ERROR:
        logger.error(f"Request error: {exc}", extra=log_extra)
        logger.warning(
            "TLS certificate error detected. Consider disabling TLS verification "
            "or providing a valid CA certificate."
        )
    else:
        logger.error(f"Request error: {exc}", extra=log_extra)
