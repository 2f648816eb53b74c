"""
Process cache and configuration manager tests.
"""

import asyncio
import json
import time

import pytest

from mapstyler.core.cache import ProcessCache
from mapstyler.core.config_manager import (
    DEFAULT_CONFIG,
    get_config_manager,
    reset_config_manager,
)
from mapstyler.core.exceptions import ConfigError
from mapstyler.core.formats.base import clear_shared_caches, shared_cache


class TestProcessCache:

    def test_get_and_set(self):
        cache = ProcessCache()
        cache.set("a", 1)
        assert "a" in cache
        assert cache.get("a") == 1
        assert cache.get("missing", "fallback") == "fallback"

    def test_unbounded_by_default(self):
        cache = ProcessCache()
        for i in range(500):
            cache.set(i, i)
        assert len(cache) == 500

    def test_evicts_oldest(self):
        cache = ProcessCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert "a" not in cache
        assert cache.get("b") == 2 and cache.get("c") == 3

    def test_ttl_expiry(self):
        cache = ProcessCache(ttl_seconds=0.01)
        cache.set("a", 1)
        time.sleep(0.05)
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_invalid_bound(self):
        with pytest.raises(ValueError):
            ProcessCache(max_entries=0)

    async def test_locked_serialises_one_key(self):
        cache = ProcessCache()
        order = []

        async def worker(key, name):
            async with cache.locked(key):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a", "first"), worker("a", "second"))
        assert order == ["first-in", "first-out", "second-in", "second-out"]

        order.clear()
        await asyncio.gather(worker("a", "first"), worker("b", "second"))
        assert order[:2] == ["first-in", "second-in"]

    async def test_locks_dropped_after_use(self):
        cache = ProcessCache()

        with pytest.raises(RuntimeError):
            async with cache.locked("failed"):
                raise RuntimeError("fetch failed")
        async with cache.locked("stored"):
            cache.set("stored", 1)

        assert cache._locks == {}
        assert cache.get("stored") == 1

    def test_shared_cache_sized_from_config(self):
        get_config_manager().set("cache/max_entries", 3)
        clear_shared_caches()

        cache = shared_cache("GeoJSON-extents")

        assert cache.max_entries == 3
        assert shared_cache("GeoJSON-extents") is cache


class TestConfigManager:

    def test_defaults_written_on_first_use(self):
        config = get_config_manager()

        assert config.config_file.exists()
        assert config.get("fetch/timeout_seconds") == DEFAULT_CONFIG["fetch"]["timeout_seconds"]
        assert config.get("projection/target_crs") == "EPSG:3857"

    def test_null_values_use_default(self):
        assert get_config_manager().get("cache/ttl_seconds", 42) == 42

    def test_missing_key(self):
        assert get_config_manager().get("no/such/key", "x") == "x"

    def test_set_persists(self):
        get_config_manager().set("pipeline/layer_timeout_seconds", 5)
        reset_config_manager()

        assert get_config_manager().get("pipeline/layer_timeout_seconds") == 5

    def test_old_files_gain_new_keys(self):
        config = get_config_manager()
        config.config_file.write_text(json.dumps({"fetch": {"timeout_seconds": 3}}))
        reset_config_manager()

        config = get_config_manager()
        assert config.get("fetch/timeout_seconds") == 3
        assert config.get("fetch/max_size_mb") == DEFAULT_CONFIG["fetch"]["max_size_mb"]

    def test_corrupt_file_falls_back_to_defaults(self):
        config = get_config_manager()
        config.config_file.write_text("{corrupt")
        reset_config_manager()

        assert get_config_manager().get("loading/stop_delay_seconds") == 0.8

    def test_set_through_non_section_raises(self):
        config = get_config_manager()
        with pytest.raises(ConfigError):
            config.set("projection/target_crs/inner", 1)

    def test_get_float(self):
        config = get_config_manager()
        config.set("fetch/timeout_seconds", "not a number")
        assert config.get_float("fetch/timeout_seconds", 30.0) == 30.0

    def test_reset(self):
        config = get_config_manager()
        config.set("geotiff/stream_remote", False)
        config.reset()
        assert config.get("geotiff/stream_remote") is True
