"""Model-list cache with persistent fallback."""

import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

import yaml

from lollms_bridge.models.results import ModelDescriptor

logger = logging.getLogger(__name__)

# Key under which the model list is persisted
MODELS_CACHE_KEY = "lollms_models_cache"


class KeyValueStore(Protocol):
    """Persistent key-value storage supplied by the host application."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def update(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``; ``None`` removes the key."""
        ...


class MemoryStore:
    """Process-local store, mainly for tests and short-lived scripts."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def update(self, key: str, value: Any) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value


class YamlFileStore:
    """Store persisted as a YAML mapping on disk.

    The whole file is rewritten on every update.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed store file: {self.path}")
            return {}
        return data

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def update(self, key: str, value: Any) -> None:
        data = self._load()
        if value is None:
            data.pop(key, None)
        else:
            data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(data, f, sort_keys=True)


class CacheState(str, Enum):
    """Where the next ``get()`` would be served from."""

    EMPTY = "empty"
    MEMORY = "memory"
    PERSISTED = "persisted"


class ModelCache:
    """Last known model list, kept in memory and in a persistent store.

    The list is only ever replaced as a whole, so concurrent readers see either
    the old or the new value.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[list[ModelDescriptor]]],
        store: KeyValueStore | None = None,
    ):
        self._fetch = fetch
        self._store = store
        self._models: tuple[ModelDescriptor, ...] = ()
        # True while the last get() served a fallback after a failed fetch
        self.stale = False

    @property
    def state(self) -> CacheState:
        if self._models:
            return CacheState.MEMORY
        if self._load_persisted():
            return CacheState.PERSISTED
        return CacheState.EMPTY

    async def get(
        self, force_refresh: bool = False, allow_stale: bool = True
    ) -> list[ModelDescriptor]:
        """Return the model list.

        Args:
            force_refresh: Skip both cached copies and fetch from the server.
            allow_stale: On fetch failure, fall back to the persisted copy
                (or the in-memory one when nothing is persisted).

        Returns:
            The models, freshly fetched or cached.

        Raises:
            Exception: The fetch error, when no fallback is available.
        """
        if not force_refresh:
            if self._models:
                return list(self._models)

            persisted = self._load_persisted()
            if persisted:
                logger.debug("Using cached models from persistent store")
                self._models = persisted
                return list(persisted)

        try:
            models = tuple(await self._fetch())
        except Exception:
            fallback = (self._load_persisted() or self._models) if allow_stale else ()
            if not fallback:
                raise
            logger.warning("Using stale cached models due to fetch error", exc_info=True)
            self._models = fallback
            self.stale = True
            return list(fallback)

        self._models = models
        self.stale = False
        if self._store is not None:
            self._store.update(MODELS_CACHE_KEY, [m.model_dump() for m in models])
        logger.info(f"Successfully fetched {len(models)} models")
        return list(models)

    def invalidate(self) -> None:
        """Drop both the in-memory and the persisted copy."""
        self._models = ()
        self.stale = False
        if self._store is not None:
            self._store.update(MODELS_CACHE_KEY, None)

    def _load_persisted(self) -> tuple[ModelDescriptor, ...]:
        if self._store is None:
            return ()
        stored = self._store.get(MODELS_CACHE_KEY)
        if not isinstance(stored, list):
            return ()
        models = []
        for entry in stored:
            if isinstance(entry, dict) and isinstance(entry.get("id"), str):
                models.append(ModelDescriptor(id=entry["id"]))
        return tuple(models)
