"""Unified async client for OpenAI-compatible, Ollama and Lollms inference servers."""

__version__ = "1.0.0"

from lollms_bridge.config import BackendConfig, BackendKind, Settings, get_settings
from lollms_bridge.core.client import ChatClient
from lollms_bridge.core.controller import CancellationToken

__all__ = [
    "BackendConfig",
    "BackendKind",
    "CancellationToken",
    "ChatClient",
    "Settings",
    "__version__",
    "get_settings",
]
