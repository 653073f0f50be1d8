"""Unified inference client.

``ChatClient`` is the only entry point callers use. It picks the adapter for
the configured backend kind, runs every request under a
:class:`RequestController`, and degrades gracefully where an operation has a
safe fallback (stale model list, estimated token count, default context size).
"""

import inspect
import json
import logging
import math
import time
import traceback
from collections.abc import Awaitable, Callable, Sequence
from contextlib import aclosing
from typing import Any

import httpx

from lollms_bridge.config import BackendConfig, Settings
from lollms_bridge.core.adapters import (
    EXTENDED_OPERATIONS,
    BackendAdapter,
    Operation,
    RequestSpec,
    get_adapter,
)
from lollms_bridge.core.cache import KeyValueStore, ModelCache, YamlFileStore
from lollms_bridge.core.controller import CancellationToken, RequestController
from lollms_bridge.core.transport import Transport
from lollms_bridge.models.messages import ChatMessage
from lollms_bridge.models.results import (
    ConnectionTestResult,
    ContextSizeResult,
    ModelDescriptor,
    TokenizeResult,
)
from lollms_bridge.utils.errors import (
    ApiError,
    ConfigurationError,
    NoImageDataError,
    RequestAbortedError,
    ResponseFormatError,
    StreamIncompleteError,
    classify_exception,
    extract_error_message,
    log_error,
)
from lollms_bridge.utils.logging import call_context

logger = logging.getLogger(__name__)

# Context size reported when the server cannot be asked
DEFAULT_CONTEXT_SIZE = 4096

# Average characters per token used for local estimates
CHARS_PER_TOKEN = 4

EXTRACTION_DISABLED_MESSAGE = (
    "[Text extraction is disabled. Enable extended endpoints to extract text from files.]"
)

DeltaCallback = Callable[[str], Awaitable[None] | None]


def estimate_token_count(text: str) -> int:
    """Approximate token count of ``text`` (one token per four characters)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _parse_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except ValueError as e:
        raise ResponseFormatError(f"Server returned invalid JSON: {e}") from e


class ChatClient:
    """Client for OpenAI-compatible, Ollama and Lollms servers.

    Args:
        config: Backend configuration.
        store: Persistent store for the model-list cache. Memory only if None.
        http_transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
    """

    def __init__(
        self,
        config: BackendConfig,
        store: KeyValueStore | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._http_transport = http_transport
        self._transport = Transport(config, http_transport)
        self._adapter: BackendAdapter = get_adapter(config)
        self._cache = ModelCache(self._fetch_models, store)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChatClient":
        """Create a client from application settings."""
        store = None
        if settings.cache.store_path is not None:
            store = YamlFileStore(settings.cache.store_path)
        return cls(settings.backend, store=store)

    @property
    def model_name(self) -> str:
        return self.config.model_name

    @property
    def cache(self) -> ModelCache:
        return self._cache

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def update_config(self, config: BackendConfig) -> None:
        """Switch to a new configuration.

        Requests already in flight finish on the old configuration and its
        connection pool. The model cache is dropped only when the endpoint
        itself changes; a new API key or model name keeps it.
        """
        old_config = self.config
        old_transport = self._transport

        self.config = config
        self._transport = Transport(config, self._http_transport)
        self._adapter = get_adapter(config)
        await old_transport.retire()

        if old_config.endpoint_identity != config.endpoint_identity:
            logger.info("Backend endpoint changed, clearing model cache")
            self._cache.invalidate()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def test_connection(self) -> ConnectionTestResult:
        """Fetch the model list from the server and summarize the outcome.

        Runs a forced refresh, so an unreachable server with a cached model
        list still succeeds; ``details`` then notes that the list is stale.
        Never raises; failures are reported in the result.
        """
        verification = "Disabled" if self.config.tls_disable_verification else "Enabled"
        details = (
            f"URL: {self.config.base_url or self.config.endpoint_url}\n"
            f"Backend: {self.config.backend_kind.value}\n"
            f"SSL Verification: {verification}"
        )
        try:
            models = await self._cache.get(force_refresh=True)
        except Exception as e:
            trace = "".join(traceback.format_exception(e))
            return ConnectionTestResult(
                success=False,
                message=f"Connection failed: {str(e) or type(e).__name__}",
                details=f"{details}\nError code: {classify_exception(e).value}\n\n{trace}",
            )
        if self._cache.stale:
            details += "\nModels: served from cache, the server could not be reached"
        return ConnectionTestResult(
            success=True,
            message=f"Connection successful. Found {len(models)} models.",
            details=details,
        )

    async def get_models(self, force_refresh: bool = False) -> list[ModelDescriptor]:
        """List the server's models, served from cache unless forced."""
        logger.info(
            f"Fetching models from {self.config.base_url} (force: {force_refresh})"
        )
        return await self._cache.get(force_refresh=force_refresh)

    async def tokenize(self, text: str, model: str | None = None) -> TokenizeResult:
        """Count tokens, falling back to a local estimate.

        The result is an estimate (``is_estimation=True``) when extended
        endpoints are disabled or the server call fails for any reason.
        """
        estimate = TokenizeResult(
            token_count=estimate_token_count(text), token_ids=[], is_estimation=True
        )
        if not self._extended_enabled(Operation.TOKENIZE):
            return estimate
        try:
            return await self._call(Operation.TOKENIZE, text=text, model=model)
        except Exception as e:
            logger.warning(f"Tokenize failed, using estimation: {e}")
            return estimate

    async def get_context_size(self, model: str | None = None) -> ContextSizeResult:
        """Return the model's context size, or ``DEFAULT_CONTEXT_SIZE`` as an estimate."""
        fallback = ContextSizeResult(context_size=DEFAULT_CONTEXT_SIZE, is_estimation=True)
        if not self._extended_enabled(Operation.CONTEXT_SIZE):
            return fallback
        try:
            return await self._call(Operation.CONTEXT_SIZE, model=model)
        except Exception as e:
            logger.warning(f"Context size lookup failed, using default: {e}")
            return fallback

    async def extract_text(self, base64_data: str, filename: str) -> str:
        """Extract text from a base64-encoded file on the server.

        There is no fallback: server failures raise.
        """
        if not self._extended_enabled(Operation.EXTRACT_TEXT):
            return EXTRACTION_DISABLED_MESSAGE
        return await self._call(Operation.EXTRACT_TEXT, file=base64_data, filename=filename)

    async def generate_image(
        self, prompt: str, cancellation: CancellationToken | None = None
    ) -> str:
        """Generate one image and return it base64-encoded.

        Raises:
            NoImageDataError: If the response carries no base64 image.
        """
        response = await self._call(
            Operation.GENERATE_IMAGE, cancellation=cancellation, prompt=prompt
        )
        if response.data and response.data[0].b64_json:
            return response.data[0].b64_json
        raise NoImageDataError("API response did not contain valid b64_json image data.")

    async def send_chat(
        self,
        messages: Sequence[ChatMessage | dict[str, Any]],
        on_delta: DeltaCallback | None = None,
        cancellation: CancellationToken | None = None,
        model_override: str | None = None,
    ) -> str:
        """Send a chat completion request.

        Streams when ``on_delta`` is given; each text delta is passed to it as
        it arrives (sync or async callables are accepted).

        Args:
            messages: Conversation history. Messages flagged ``skipInPrompt``
                are not sent.
            on_delta: Optional callback for streamed deltas.
            cancellation: Optional token to abort the request.
            model_override: Model to use instead of the configured one.

        Returns:
            The complete response text.

        Raises:
            ApiError: On a non-2xx response.
            RequestTimeoutError: If the configured timeout elapsed.
            RequestAbortedError: If ``cancellation`` was triggered.
            StreamIncompleteError: If the stream ended without a completion signal.
            httpx.TransportError: On network failures.
        """
        chat_messages = [
            m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m)
            for m in messages
        ]
        stream = on_delta is not None
        adapter = self._adapter
        transport = self._transport
        timeout_seconds = self.config.timeout_seconds

        with call_context():
            spec = self._resolve(
                Operation.CHAT, messages=chat_messages, model=model_override, stream=stream
            )
            logger.debug(
                "Sending chat request",
                extra={
                    "url": spec.url,
                    "model": model_override or self.config.model_name,
                    "stream": stream,
                },
            )
            start_time = time.perf_counter()
            try:
                async with transport.lease() as http, RequestController(
                    timeout_seconds, cancellation, adapter.display_name
                ) as controller:
                    async with http.stream(
                        spec.method, spec.url, headers=spec.headers, json=spec.body
                    ) as response:
                        await self._raise_for_status(response, adapter)

                        if not stream:
                            payload = _parse_json(await response.aread())
                            text = adapter.decode(Operation.CHAT, payload)
                        else:
                            decoder = adapter.new_stream_decoder()
                            async with aclosing(
                                decoder.iter_deltas(response.aiter_bytes())
                            ) as deltas:
                                async for delta in deltas:
                                    result = on_delta(delta)
                                    if inspect.isawaitable(result):
                                        await result
                                    controller.raise_if_aborted()
                            if not decoder.done:
                                raise StreamIncompleteError(decoder.text)
                            text = decoder.text
            except RequestAbortedError:
                logger.info("Chat request cancelled by caller")
                raise
            except Exception as e:
                log_error(e, operation=Operation.CHAT.value, backend=adapter.kind.value)
                raise

            logger.debug(
                "Chat request completed",
                extra={"duration_ms": int((time.perf_counter() - start_time) * 1000)},
            )
            return text

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _extended_enabled(self, operation: Operation) -> bool:
        return operation not in EXTENDED_OPERATIONS or self.config.use_extended_endpoints

    def _resolve(self, operation: Operation, **params: Any) -> RequestSpec:
        if not self.config.base_url:
            raise ConfigurationError(
                f"{self._adapter.display_name} API URL is not configured correctly. "
                "Please check the settings."
            )
        return self._adapter.resolve(operation, **params)

    async def _fetch_models(self) -> list[ModelDescriptor]:
        return await self._call(Operation.LIST_MODELS)

    async def _call(
        self,
        operation: Operation,
        cancellation: CancellationToken | None = None,
        **params: Any,
    ) -> Any:
        """Run a single non-streamed request and decode its response."""
        adapter = self._adapter
        transport = self._transport
        timeout_seconds = self.config.timeout_seconds
        with call_context():
            spec = self._resolve(operation, **params)
            try:
                async with transport.lease() as http, RequestController(
                    timeout_seconds, cancellation, adapter.display_name
                ):
                    response = await http.request(
                        spec.method, spec.url, headers=spec.headers, json=spec.body
                    )
                    await self._raise_for_status(response, adapter)
                    payload = _parse_json(response.content)
                return adapter.decode(operation, payload)
            except RequestAbortedError:
                raise
            except Exception as e:
                log_error(e, operation=operation.value, url=spec.url)
                raise

    async def _raise_for_status(
        self, response: httpx.Response, adapter: BackendAdapter
    ) -> None:
        if response.is_success:
            return
        body = (await response.aread()).decode("utf-8", errors="replace")
        logger.error(
            f"{adapter.display_name} API error body: {body[:500]}",
            extra={"status_code": response.status_code},
        )
        raise ApiError(
            response.status_code,
            response.reason_phrase,
            extract_error_message(body),
            backend=adapter.display_name,
        )
