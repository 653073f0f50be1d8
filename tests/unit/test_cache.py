"""Tests for the model-list cache and key-value stores."""

import httpx
import pytest
import yaml

from lollms_bridge.core.cache import (
    MODELS_CACHE_KEY,
    CacheState,
    MemoryStore,
    ModelCache,
    YamlFileStore,
)
from lollms_bridge.models.results import ModelDescriptor


class FakeFetcher:
    """Async model fetcher returning canned results or raising."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return [ModelDescriptor(id=model_id) for model_id in result]


def ids(models):
    return [m.id for m in models]


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_get_default(self):
        """Test missing keys return the default."""
        assert MemoryStore().get("missing", "d") == "d"

    def test_update_and_delete(self):
        """Test values can be stored and removed with None."""
        store = MemoryStore()
        store.update("k", [1])
        assert store.get("k") == [1]
        store.update("k", None)
        assert store.get("k") is None


class TestYamlFileStore:
    """Tests for YamlFileStore."""

    def test_missing_file(self, tmp_path):
        """Test reading before any write returns the default."""
        store = YamlFileStore(tmp_path / "store.yaml")
        assert store.get("k") is None

    def test_round_trip(self, tmp_path):
        """Test written values are persisted as YAML."""
        path = tmp_path / "nested" / "store.yaml"
        store = YamlFileStore(path)
        store.update(MODELS_CACHE_KEY, [{"id": "m1"}])

        assert YamlFileStore(path).get(MODELS_CACHE_KEY) == [{"id": "m1"}]
        assert yaml.safe_load(path.read_text()) == {MODELS_CACHE_KEY: [{"id": "m1"}]}

    def test_delete(self, tmp_path):
        """Test None removes only the given key."""
        store = YamlFileStore(tmp_path / "store.yaml")
        store.update("a", 1)
        store.update("b", 2)
        store.update("a", None)
        assert store.get("a") is None
        assert store.get("b") == 2

    def test_malformed_file(self, tmp_path):
        """Test a non-mapping YAML file is treated as empty."""
        path = tmp_path / "store.yaml"
        path.write_text("- just\n- a list\n")
        assert YamlFileStore(path).get("k") is None


class TestModelCache:
    """Tests for ModelCache."""

    @pytest.mark.asyncio
    async def test_first_get_fetches_and_persists(self):
        """Test an empty cache fetches and stores both copies."""
        store = MemoryStore()
        fetch = FakeFetcher(["a", "b"])
        cache = ModelCache(fetch, store)

        assert cache.state is CacheState.EMPTY
        assert ids(await cache.get()) == ["a", "b"]
        assert store.get(MODELS_CACHE_KEY) == [{"id": "a"}, {"id": "b"}]
        assert cache.state is CacheState.MEMORY

    @pytest.mark.asyncio
    async def test_memory_copy_served_without_fetch(self):
        """Test later gets do not hit the network."""
        fetch = FakeFetcher(["a"])
        cache = ModelCache(fetch, MemoryStore())
        await cache.get()
        assert ids(await cache.get()) == ["a"]
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_persisted_copy_adopted(self):
        """Test a persisted list is adopted into memory without fetching."""
        store = MemoryStore({MODELS_CACHE_KEY: [{"id": "stored"}]})
        fetch = FakeFetcher()
        cache = ModelCache(fetch, store)

        assert cache.state is CacheState.PERSISTED
        assert ids(await cache.get()) == ["stored"]
        assert fetch.calls == 0
        assert cache.state is CacheState.MEMORY

    @pytest.mark.asyncio
    async def test_empty_persisted_list_is_ignored(self):
        """Test an empty persisted list counts as absent."""
        store = MemoryStore({MODELS_CACHE_KEY: []})
        cache = ModelCache(FakeFetcher(["fresh"]), store)
        assert ids(await cache.get()) == ["fresh"]

    @pytest.mark.asyncio
    async def test_force_refresh_replaces_both_copies(self):
        """Test a forced refresh fetches even when cached."""
        store = MemoryStore()
        cache = ModelCache(FakeFetcher(["old"], ["new"]), store)
        await cache.get()
        assert ids(await cache.get(force_refresh=True)) == ["new"]
        assert store.get(MODELS_CACHE_KEY) == [{"id": "new"}]
        assert ids(await cache.get()) == ["new"]

    @pytest.mark.asyncio
    async def test_stale_fallback_on_forced_refresh_failure(self):
        """Test a failed forced refresh serves the previously cached list."""
        store = MemoryStore()
        cache = ModelCache(FakeFetcher(["a"], httpx.ConnectError("refused")), store)
        await cache.get()
        assert ids(await cache.get(force_refresh=True)) == ["a"]

    @pytest.mark.asyncio
    async def test_stale_flag(self):
        """Test stale is set by a fallback and cleared by the next good fetch."""
        cache = ModelCache(FakeFetcher(["a"], RuntimeError("down"), ["b"]), MemoryStore())

        await cache.get()
        assert cache.stale is False
        await cache.get(force_refresh=True)
        assert cache.stale is True
        assert ids(await cache.get(force_refresh=True)) == ["b"]
        assert cache.stale is False

    @pytest.mark.asyncio
    async def test_stale_fallback_from_store_on_fresh_cache(self):
        """Test a new cache falls back to the persisted list when fetching fails."""
        store = MemoryStore({MODELS_CACHE_KEY: [{"id": "persisted"}]})
        cache = ModelCache(FakeFetcher(httpx.ConnectError("refused")), store)
        assert ids(await cache.get(force_refresh=True)) == ["persisted"]

    @pytest.mark.asyncio
    async def test_stale_fallback_without_store(self):
        """Test the in-memory copy is the fallback when nothing is persisted."""
        cache = ModelCache(FakeFetcher(["mem"], RuntimeError("down")))
        await cache.get()
        assert ids(await cache.get(force_refresh=True)) == ["mem"]

    @pytest.mark.asyncio
    async def test_failure_without_fallback_propagates(self):
        """Test the fetch error surfaces when no copy exists."""
        cache = ModelCache(FakeFetcher(httpx.ConnectError("refused")), MemoryStore())
        with pytest.raises(httpx.ConnectError):
            await cache.get()

    @pytest.mark.asyncio
    async def test_allow_stale_false_propagates(self):
        """Test stale fallback can be disabled."""
        store = MemoryStore({MODELS_CACHE_KEY: [{"id": "persisted"}]})
        cache = ModelCache(FakeFetcher(httpx.ConnectError("refused")), store)
        with pytest.raises(httpx.ConnectError):
            await cache.get(force_refresh=True, allow_stale=False)

    @pytest.mark.asyncio
    async def test_invalidate_clears_both_copies(self):
        """Test invalidate drops memory and persisted copies."""
        store = MemoryStore()
        fetch = FakeFetcher(["a"], ["b"])
        cache = ModelCache(fetch, store)
        await cache.get()

        cache.invalidate()

        assert cache.state is CacheState.EMPTY
        assert store.get(MODELS_CACHE_KEY) is None
        assert ids(await cache.get()) == ["b"]
        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_returned_list_is_a_copy(self):
        """Test mutating a returned list does not alter the cache."""
        cache = ModelCache(FakeFetcher(["a"]))
        models = await cache.get()
        models.clear()
        assert ids(await cache.get()) == ["a"]
