# src/cache/redis_store.py — v2
"""Redis-based cache store (CACHE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Suitable for deployments where several workers share one cache.
"""

from __future__ import annotations

import logging

from seoanalyzer.cache.base_cache_store import (
    BaseCacheStore,
    CacheIOError,
    QuotaExceededError,
)

logger = logging.getLogger(__name__)

_INDEX_KEY = "seoanalyzer:cache:__index__"


class RedisCacheStore(BaseCacheStore):
    """Redis-backed cache store for distributed deployments."""

    def __init__(self, redis_url: str) -> None:
        try:
            import redis
        except ImportError as e:
            raise ImportError(
                "redis package required: pip install redis"
            ) from e

        self._client = redis.Redis.from_url(redis_url, decode_responses=False)
        self._errors = redis.exceptions

    async def get(self, key: str) -> bytes | None:
        """Retrieve payload by key."""
        try:
            return self._client.get(key)
        except self._errors.RedisError as e:
            raise CacheIOError(f"Failed to read cache key {key}: {e}") from e

    async def set(self, key: str, data: bytes) -> None:
        """Store payload and record the key in the index set."""
        try:
            self._client.set(key, data)
            # Maintain a set of all cache keys for prefix listing
            self._client.sadd(_INDEX_KEY, key)
        except self._errors.ResponseError as e:
            if str(e).startswith("OOM"):
                raise QuotaExceededError(str(e)) from e
            raise CacheIOError(f"Failed to write cache key {key}: {e}") from e
        except self._errors.RedisError as e:
            raise CacheIOError(f"Failed to write cache key {key}: {e}") from e

    async def delete(self, key: str) -> None:
        """Remove a cache entry."""
        try:
            self._client.delete(key)
            self._client.srem(_INDEX_KEY, key)
        except self._errors.RedisError as e:
            raise CacheIOError(f"Failed to delete cache key {key}: {e}") from e

    async def keys(self, prefix: str = "") -> list[str]:
        """List indexed keys starting with prefix."""
        try:
            members = self._client.smembers(_INDEX_KEY)
        except self._errors.RedisError as e:
            raise CacheIOError(f"Failed to list cache keys: {e}") from e
        found: list[str] = []
        for member in members:
            key = member.decode("utf-8") if isinstance(member, bytes) else member
            if key.startswith(prefix):
                found.append(key)
        return found

    async def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()
