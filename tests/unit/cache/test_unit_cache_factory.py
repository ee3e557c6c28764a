# tests/unit/cache/test_unit_cache_factory.py — v2
"""Tests for cache/cache_factory.py."""

from __future__ import annotations

import pytest

from seoanalyzer.cache.cache_factory import create_cache_store
from seoanalyzer.cache.json_store import JsonCacheStore
from seoanalyzer.cache.memory_store import MemoryCacheStore
from seoanalyzer.cache.sqlite_store import SqliteCacheStore
from seoanalyzer.config.settings import Settings


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)  # type: ignore[call-arg]


class TestCreateCacheStore:
    def test_memory(self):
        store = create_cache_store(_settings(cache_backend="memory"))
        assert isinstance(store, MemoryCacheStore)

    def test_json(self, tmp_path):
        store = create_cache_store(_settings(cache_backend="json", cache_root=tmp_path))
        assert isinstance(store, JsonCacheStore)

    def test_sqlite(self, tmp_path):
        store = create_cache_store(_settings(cache_backend="sqlite", cache_root=tmp_path))
        assert isinstance(store, SqliteCacheStore)
        assert (tmp_path / "seoanalyzer_cache.db").exists()

    def test_redis(self):
        from seoanalyzer.cache.redis_store import RedisCacheStore

        store = create_cache_store(
            _settings(cache_backend="redis", cache_redis_url="redis://localhost:6379/0")
        )
        assert isinstance(store, RedisCacheStore)

    def test_quota_passed_through(self):
        store = create_cache_store(_settings(cache_backend="memory", cache_max_bytes=128))
        assert store._max_bytes == 128

    def test_unknown_backend(self):
        settings = _settings(cache_backend="memory")
        object.__setattr__(settings, "cache_backend", "floppy")
        with pytest.raises(ValueError, match="Unsupported"):
            create_cache_store(settings)
