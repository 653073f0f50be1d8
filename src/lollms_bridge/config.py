"""Configuration management using Pydantic Settings.

Loads configuration from multiple sources with the following priority (highest first):
1. Environment variables (LOLLMS_BRIDGE_* prefix)
2. .env file
3. config.local.yaml (if exists)
4. config.yaml
5. Default values
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default request timeout (10 minutes)
DEFAULT_REQUEST_TIMEOUT_MS = 600_000


class BackendKind(str, Enum):
    """Wire protocol dialect spoken by the configured server."""

    OPENAI = "openai"
    OLLAMA = "ollama"
    LOLLMS = "lollms"


class BackendConfig(BaseModel):
    """Connection settings for one inference backend.

    Instances are immutable; build a new one (or use ``model_copy(update=...)``)
    to change a setting.
    """

    model_config = ConfigDict(frozen=True)

    endpoint_url: str = "http://localhost:9642"
    api_key: str = ""
    backend_kind: BackendKind = BackendKind.LOLLMS
    model_name: str = ""
    tls_disable_verification: bool = False
    tls_custom_ca_path: Path | None = None
    use_extended_endpoints: bool = False
    request_timeout_ms: int = Field(default=DEFAULT_REQUEST_TIMEOUT_MS, gt=0)

    @field_validator("tls_custom_ca_path", mode="before")
    @classmethod
    def strip_quotes(cls, v):
        """Remove quotes left over from pasting a path into a settings field."""
        if isinstance(v, str):
            v = v.strip().strip("'\"")
            return v or None
        return v

    @property
    def base_url(self) -> str:
        """Scheme and host of the endpoint URL, or an empty string if invalid."""
        try:
            parts = urlsplit(self.endpoint_url.strip())
        except ValueError:
            return ""
        if parts.scheme not in ("http", "https") or not parts.netloc:
            return ""
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000

    @property
    def endpoint_identity(self) -> tuple[str, BackendKind]:
        """Values whose change makes a cached model list meaningless."""
        return (self.base_url, self.backend_kind)


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class CacheSettings(BaseModel):
    """Model-list cache configuration."""

    store_path: Path | None = Field(
        default=None,
        description="YAML file used to persist the model list. In-memory only when unset.",
    )


def _load_yaml_config(config_dir: Path) -> dict:
    """Load configuration from YAML files.

    Loads config.yaml and optionally overlays config.local.yaml.
    """
    config = {}

    config_file = config_dir / "config.yaml"
    if config_file.exists():
        with open(config_file) as f:
            config = yaml.safe_load(f) or {}

    local_config_file = config_dir / "config.local.yaml"
    if local_config_file.exists():
        with open(local_config_file) as f:
            local_config = yaml.safe_load(f) or {}
            config = _deep_merge(config, local_config)

    return config


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class Settings(BaseSettings):
    """Application settings loaded from environment, .env, and config files."""

    model_config = SettingsConfigDict(
        env_prefix="LOLLMS_BRIDGE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    backend: BackendConfig = Field(default_factory=BackendConfig)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)

    # Direct environment variable mappings for common settings
    lollms_api_key: str | None = Field(default=None, validation_alias="LOLLMS_API_KEY")
    lollms_api_url: str | None = Field(default=None, validation_alias="LOLLMS_API_URL")

    def __init__(self, config_dir: Path | None = None, **data):
        """Initialize settings, loading from YAML if config_dir provided."""
        if config_dir is not None:
            yaml_config = _load_yaml_config(config_dir)
            # Merge YAML config with any explicit data (explicit data wins)
            merged = _deep_merge(yaml_config, data)
            super().__init__(**merged)
        else:
            super().__init__(**data)

        # BackendConfig is frozen, so overrides produce a new instance
        updates = {}
        if self.lollms_api_key and not self.backend.api_key:
            updates["api_key"] = self.lollms_api_key
        if self.lollms_api_url:
            updates["endpoint_url"] = self.lollms_api_url
        if updates:
            self.backend = self.backend.model_copy(update=updates)

    def validate_required(self) -> None:
        """Validate that required settings are present.

        Raises:
            ValueError: If required settings are missing.
        """
        if not self.backend.base_url:
            raise ValueError(
                f"Invalid backend endpoint URL: {self.backend.endpoint_url!r}. "
                "Set backend.endpoint_url or LOLLMS_API_URL."
            )

        ca_path = self.backend.tls_custom_ca_path
        if ca_path is not None and not ca_path.is_file():
            raise ValueError(f"Custom CA certificate not found: {ca_path}")


@lru_cache
def get_settings(config_dir: Path | None = None) -> Settings:
    """Get cached settings instance.

    Args:
        config_dir: Optional path to config directory. If None, only environment
                   variables and .env file are used.

    Returns:
        Settings instance.
    """
    if config_dir is None:
        # Try to find config directory relative to project root
        project_root = Path(__file__).parent.parent.parent
        default_config_dir = project_root / "config"
        if default_config_dir.exists():
            config_dir = default_config_dir

    return Settings(config_dir=config_dir)
