"""Data models for messages and operation results."""

from lollms_bridge.models.messages import (
    ChatMessage,
    ImageUrl,
    ImageUrlPart,
    MessagePart,
    TextPart,
    prompt_messages,
)
from lollms_bridge.models.results import (
    ConnectionTestResult,
    ContextSizeResult,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ImageObject,
    ModelDescriptor,
    TokenizeResult,
)

__all__ = [
    "ChatMessage",
    "ConnectionTestResult",
    "ContextSizeResult",
    "ImageGenerationRequest",
    "ImageGenerationResponse",
    "ImageObject",
    "ImageUrl",
    "ImageUrlPart",
    "MessagePart",
    "ModelDescriptor",
    "TextPart",
    "TokenizeResult",
    "prompt_messages",
]
