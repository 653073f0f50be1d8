"""Cancellation and timeout handling for a single request.

A :class:`RequestController` races a timer against an optional
:class:`CancellationToken`. Whichever fires first cancels the task running the
request and records why, so the caller can tell a timeout apart from a
deliberate cancel.
"""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from lollms_bridge.utils.errors import RequestAbortedError, RequestTimeoutError

logger = logging.getLogger(__name__)


class AbortReason(str, Enum):
    """Which source ended a request early."""

    TIMEOUT = "timeout"
    USER = "user-cancelled"


class CancellationToken:
    """Caller-owned cancellation signal.

    ``cancel()`` may be called from any coroutine or callback on the event
    loop, any number of times.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        for callback in list(self._callbacks):
            callback()

    async def wait(self) -> None:
        await self._event.wait()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback run on cancellation.

        Returns:
            A function that unregisters the callback.
        """
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove


class RequestController:
    """Bound the code inside ``async with`` by a timeout and a cancellation token.

    Example:
        async with RequestController(30.0, token) as controller:
            response = await client.send(request)

    On timeout the block raises :class:`RequestTimeoutError`; on user
    cancellation it raises :class:`RequestAbortedError`. The timer and the token
    subscription are released on every exit path.
    """

    def __init__(
        self,
        timeout_seconds: float,
        cancellation: CancellationToken | None = None,
        backend: str = "Lollms",
    ):
        self.timeout_seconds = timeout_seconds
        self.cancellation = cancellation
        self.backend = backend
        self.reason: AbortReason | None = None
        self._task: asyncio.Task | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._cancel_requested = False

    @property
    def aborted(self) -> bool:
        return self.reason is not None

    async def __aenter__(self) -> "RequestController":
        self._task = asyncio.current_task()
        if self._task is None:
            raise RuntimeError("RequestController must be used inside a task")

        if self.cancellation is not None and self.cancellation.cancelled:
            self.reason = AbortReason.USER
            raise RequestAbortedError()

        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timeout_seconds, self.abort, AbortReason.TIMEOUT)
        if self.cancellation is not None:
            self._unsubscribe = self.cancellation.add_callback(
                lambda: self.abort(AbortReason.USER)
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self._release()

        if self.reason is None:
            return False

        if exc_type is asyncio.CancelledError:
            # Only swallow the cancellation this controller requested
            if not self._cancel_requested or self._task.uncancel() > 0:
                return False
            logger.info(f"Request aborted: {self.reason.value}")
            raise self._error() from exc

        if self._cancel_requested:
            # The injected cancellation surfaced as a different exception
            self._task.uncancel()
        if exc_type is not None and issubclass(exc_type, (RequestAbortedError, RequestTimeoutError)):
            return False
        raise self._error() from exc

    def abort(self, reason: AbortReason) -> None:
        """Abort the bound task. Only the first call has any effect.

        When called from the bound task itself (for example from a stream
        callback) no cancellation is injected; the body is expected to poll
        :meth:`raise_if_aborted` instead.
        """
        if self.reason is not None or self._task is None or self._task.done():
            return
        self.reason = reason
        if asyncio.current_task() is not self._task:
            self._cancel_requested = True
            self._task.cancel()

    def raise_if_aborted(self) -> None:
        """Raise the abort error if the request has been aborted."""
        if self.reason is not None:
            raise self._error()

    def _error(self) -> Exception:
        if self.reason is AbortReason.TIMEOUT:
            return RequestTimeoutError(self.timeout_seconds, self.backend)
        return RequestAbortedError()

    def _release(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
