# src/cache/cache_factory.py — v3
"""Factory for cache store instantiation."""

from __future__ import annotations

from seoanalyzer.cache.base_cache_store import BaseCacheStore
from seoanalyzer.config.settings import Settings


def create_cache_store(settings: Settings | None = None) -> BaseCacheStore:
    """Instantiate the configured cache backend.

    Args:
        settings: Application settings. Defaults to JSON backend.

    Returns:
        Configured BaseCacheStore implementation.
    """
    backend = "json" if settings is None else settings.cache_backend
    max_bytes = None if settings is None else settings.cache_max_bytes
    cache_root = "~/.seoanalyzer/cache" if settings is None else str(settings.cache_root)

    if backend == "memory":
        from seoanalyzer.cache.memory_store import MemoryCacheStore
        return MemoryCacheStore(max_bytes=max_bytes)

    if backend == "json":
        from seoanalyzer.cache.json_store import JsonCacheStore
        return JsonCacheStore(cache_root=cache_root, max_bytes=max_bytes)

    if backend == "sqlite":
        from seoanalyzer.cache.sqlite_store import SqliteCacheStore
        db_path = f"{cache_root}/seoanalyzer_cache.db"
        return SqliteCacheStore(db_path=db_path, max_bytes=max_bytes)

    if backend == "redis":
        from seoanalyzer.cache.redis_store import RedisCacheStore
        if settings is None or not settings.cache_redis_url:
            raise ValueError(
                "CACHE_REDIS_URL must be set when CACHE_BACKEND=redis"
            )
        return RedisCacheStore(redis_url=settings.cache_redis_url)

    raise ValueError(f"Unsupported cache backend: {backend!r}")
