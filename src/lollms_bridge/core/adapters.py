"""Backend dialects.

Each adapter knows, for one server dialect, which URL, method and body an
operation maps to and how to read the response. The client never branches on
the backend kind itself; adding a backend means adding an adapter class and
registering it in ``ADAPTERS``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from pydantic import ValidationError

from lollms_bridge.config import BackendConfig, BackendKind
from lollms_bridge.core.streaming import (
    OllamaStreamDecoder,
    SSEStreamDecoder,
    StreamDecoder,
)
from lollms_bridge.models.messages import ChatMessage, prompt_messages
from lollms_bridge.models.results import (
    ContextSizeResult,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ModelDescriptor,
    TokenizeResult,
)
from lollms_bridge.utils.errors import ResponseFormatError


class Operation(str, Enum):
    """Logical operations a backend may serve."""

    LIST_MODELS = "list_models"
    CHAT = "chat"
    TOKENIZE = "tokenize"
    CONTEXT_SIZE = "context_size"
    EXTRACT_TEXT = "extract_text"
    GENERATE_IMAGE = "generate_image"


# Operations served by the optional Lollms extension endpoints
EXTENDED_OPERATIONS = frozenset(
    {Operation.TOKENIZE, Operation.CONTEXT_SIZE, Operation.EXTRACT_TEXT}
)


@dataclass(frozen=True)
class RequestSpec:
    """A fully resolved HTTP request."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None


class BackendAdapter(ABC):
    """Maps logical operations onto one server dialect."""

    kind: ClassVar[BackendKind]
    display_name: ClassVar[str]
    models_path: ClassVar[str]
    chat_path: ClassVar[str]

    tokenize_path: ClassVar[str] = "/lollms/v1/tokenize"
    context_size_path: ClassVar[str] = "/lollms/v1/context_size"
    extract_text_path: ClassVar[str] = "/v1/extract_text"
    images_path: ClassVar[str] = "/v1/images/generations"

    def __init__(self, config: BackendConfig):
        self.config = config

    # ------------------------------------------------------------------
    # Request side
    # ------------------------------------------------------------------

    def resolve(self, operation: Operation, **params: Any) -> RequestSpec:
        """Build the HTTP request for an operation.

        Args:
            operation: The logical operation.
            **params: Operation arguments (see the ``_*_body`` methods).

        Returns:
            The request to send.
        """
        if operation is Operation.LIST_MODELS:
            return self._request("GET", self.models_path)
        if operation is Operation.CHAT:
            return self._request(
                "POST",
                self.chat_path,
                self._chat_body(
                    params["messages"],
                    params.get("model") or self.config.model_name,
                    params.get("stream", False),
                ),
            )
        if operation is Operation.TOKENIZE:
            body = {"text": params["text"]}
            model = params.get("model") or self.config.model_name
            if model:
                body["model"] = model
            return self._request("POST", self.tokenize_path, body)
        if operation is Operation.CONTEXT_SIZE:
            body = {}
            model = params.get("model") or self.config.model_name
            if model:
                body["model"] = model
            return self._request("POST", self.context_size_path, body)
        if operation is Operation.EXTRACT_TEXT:
            return self._request(
                "POST",
                self.extract_text_path,
                {"file": params["file"], "filename": params["filename"]},
            )
        if operation is Operation.GENERATE_IMAGE:
            request = ImageGenerationRequest(prompt=params["prompt"])
            return self._request(
                "POST", self.images_path, request.model_dump(exclude_none=True)
            )
        raise ValueError(f"Unsupported operation: {operation}")

    def headers(self, with_body: bool) -> dict[str, str]:
        headers = {}
        # Keyless local servers get no Authorization header at all
        api_key = self.config.api_key.strip()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        if with_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _request(
        self, method: str, path: str, body: dict[str, Any] | None = None
    ) -> RequestSpec:
        return RequestSpec(
            method=method,
            url=f"{self.config.base_url}{path}",
            headers=self.headers(with_body=method == "POST"),
            body=body if method == "POST" else None,
        )

    @abstractmethod
    def _chat_body(
        self, messages: list[ChatMessage], model: str, stream: bool
    ) -> dict[str, Any]:
        """Build the chat request body for this dialect."""

    # ------------------------------------------------------------------
    # Response side
    # ------------------------------------------------------------------

    def decode(self, operation: Operation, payload: Any) -> Any:
        """Interpret a parsed JSON response body.

        Raises:
            ResponseFormatError: If the payload lacks the expected fields.
        """
        if operation is Operation.LIST_MODELS:
            return self._decode_models(payload)
        if operation is Operation.CHAT:
            return self._decode_chat(payload)
        if operation is Operation.TOKENIZE:
            return self._decode_tokenize(payload)
        if operation is Operation.CONTEXT_SIZE:
            return self._decode_context_size(payload)
        if operation is Operation.EXTRACT_TEXT:
            text = payload.get("text") if isinstance(payload, dict) else None
            return text if isinstance(text, str) else ""
        if operation is Operation.GENERATE_IMAGE:
            if not isinstance(payload, dict):
                raise ResponseFormatError("Image generation response is not an object")
            try:
                return ImageGenerationResponse.model_validate(payload)
            except ValidationError as e:
                raise ResponseFormatError(f"Invalid image generation response: {e}") from e
        raise ValueError(f"Unsupported operation: {operation}")

    @abstractmethod
    def _decode_models(self, payload: Any) -> list[ModelDescriptor]:
        """Read the model list response."""

    @abstractmethod
    def _decode_chat(self, payload: Any) -> str:
        """Read the non-streamed chat response."""

    @abstractmethod
    def new_stream_decoder(self) -> StreamDecoder:
        """Return a fresh decoder for this dialect's streaming framing."""

    def _decode_tokenize(self, payload: Any) -> TokenizeResult:
        if not isinstance(payload, dict):
            raise ResponseFormatError("Tokenize response is not an object")
        tokens = payload.get("tokens")
        if tokens is None:
            tokens = []
        if not isinstance(tokens, list) or not all(isinstance(t, int) for t in tokens):
            raise ResponseFormatError("Tokenize response has invalid 'tokens'")
        count = payload.get("count", len(tokens) if "tokens" in payload else None)
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise ResponseFormatError("Tokenize response has no valid 'count'")
        return TokenizeResult(token_count=count, token_ids=tokens, is_estimation=False)

    def _decode_context_size(self, payload: Any) -> ContextSizeResult:
        size = payload.get("context_size") if isinstance(payload, dict) else None
        if not isinstance(size, int) or isinstance(size, bool) or size <= 0:
            raise ResponseFormatError("Context size response has no valid 'context_size'")
        return ContextSizeResult(context_size=size, is_estimation=False)


class OpenAIAdapter(BackendAdapter):
    """OpenAI-compatible HTTP API."""

    kind = BackendKind.OPENAI
    display_name = "OpenAI"
    models_path = "/v1/models"
    chat_path = "/v1/chat/completions"

    def _chat_body(
        self, messages: list[ChatMessage], model: str, stream: bool
    ) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if model:
            body["model"] = model
        body["messages"] = [m.to_wire() for m in prompt_messages(messages)]
        body["stream"] = stream
        return body

    def _decode_models(self, payload: Any) -> list[ModelDescriptor]:
        data = payload.get("data") if isinstance(payload, dict) else None
        if data is None:
            return []
        if not isinstance(data, list):
            raise ResponseFormatError("Models response has invalid 'data'")
        return [
            ModelDescriptor(id=entry["id"])
            for entry in data
            if isinstance(entry, dict) and isinstance(entry.get("id"), str)
        ]

    def _decode_chat(self, payload: Any) -> str:
        choices = payload.get("choices") if isinstance(payload, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return ""
        message = choices[0].get("message")
        content = message.get("content") if isinstance(message, dict) else None
        return content if isinstance(content, str) else ""

    def new_stream_decoder(self) -> StreamDecoder:
        return SSEStreamDecoder()


class LollmsAdapter(OpenAIAdapter):
    """Lollms server: the OpenAI dialect plus the extension endpoints."""

    kind = BackendKind.LOLLMS
    display_name = "Lollms"


class OllamaAdapter(BackendAdapter):
    """Native Ollama API."""

    kind = BackendKind.OLLAMA
    display_name = "Ollama"
    models_path = "/api/tags"
    chat_path = "/api/chat"

    def _chat_body(
        self, messages: list[ChatMessage], model: str, stream: bool
    ) -> dict[str, Any]:
        wire = []
        for message in prompt_messages(messages):
            entry: dict[str, Any] = {"role": message.role, "content": message.text()}
            images = message.images()
            if images:
                entry["images"] = images
            wire.append(entry)
        body: dict[str, Any] = {}
        if model:
            body["model"] = model
        body["messages"] = wire
        body["stream"] = stream
        return body

    def _decode_models(self, payload: Any) -> list[ModelDescriptor]:
        models = payload.get("models") if isinstance(payload, dict) else None
        if models is None:
            return []
        if not isinstance(models, list):
            raise ResponseFormatError("Tags response has invalid 'models'")
        return [
            ModelDescriptor(id=entry["name"])
            for entry in models
            if isinstance(entry, dict) and isinstance(entry.get("name"), str)
        ]

    def _decode_chat(self, payload: Any) -> str:
        message = payload.get("message") if isinstance(payload, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        return content if isinstance(content, str) else ""

    def new_stream_decoder(self) -> StreamDecoder:
        return OllamaStreamDecoder()


ADAPTERS: dict[BackendKind, type[BackendAdapter]] = {
    adapter.kind: adapter for adapter in (OpenAIAdapter, OllamaAdapter, LollmsAdapter)
}


def get_adapter(config: BackendConfig) -> BackendAdapter:
    """Return the adapter for the configured backend kind."""
    return ADAPTERS[config.backend_kind](config)
