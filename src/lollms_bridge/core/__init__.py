"""Protocol adapters, stream decoding, request lifecycle and the client."""

from lollms_bridge.core.adapters import (
    ADAPTERS,
    BackendAdapter,
    LollmsAdapter,
    OllamaAdapter,
    OpenAIAdapter,
    Operation,
    RequestSpec,
    get_adapter,
)
from lollms_bridge.core.cache import (
    MODELS_CACHE_KEY,
    CacheState,
    KeyValueStore,
    MemoryStore,
    ModelCache,
    YamlFileStore,
)
from lollms_bridge.core.client import (
    DEFAULT_CONTEXT_SIZE,
    EXTRACTION_DISABLED_MESSAGE,
    ChatClient,
    estimate_token_count,
)
from lollms_bridge.core.controller import AbortReason, CancellationToken, RequestController
from lollms_bridge.core.streaming import (
    OllamaStreamDecoder,
    SSEStreamDecoder,
    StreamDecoder,
    extract_delta_text,
)
from lollms_bridge.core.transport import Transport, build_ssl_context

__all__ = [
    "ADAPTERS",
    "AbortReason",
    "BackendAdapter",
    "CacheState",
    "CancellationToken",
    "ChatClient",
    "DEFAULT_CONTEXT_SIZE",
    "EXTRACTION_DISABLED_MESSAGE",
    "KeyValueStore",
    "LollmsAdapter",
    "MODELS_CACHE_KEY",
    "MemoryStore",
    "ModelCache",
    "OllamaAdapter",
    "OllamaStreamDecoder",
    "OpenAIAdapter",
    "Operation",
    "RequestController",
    "RequestSpec",
    "SSEStreamDecoder",
    "StreamDecoder",
    "Transport",
    "YamlFileStore",
    "build_ssl_context",
    "estimate_token_count",
    "extract_delta_text",
    "get_adapter",
]
