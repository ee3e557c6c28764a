# src/cache/base_cache_store.py — v2
"""Abstract byte store interface behind the result cache.

Backends hold opaque bytes under string keys. They raise ``CacheIOError`` for
I/O failures and ``QuotaExceededError`` when a write does not fit; the result
cache recovers from both.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class CacheIOError(Exception):
    """Storage read/write failure. Never surfaces past the result cache."""


class QuotaExceededError(CacheIOError):
    """Write rejected because the backing medium is full."""


class BaseCacheStore(ABC):
    """Unified interface for cache storage backends."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the stored bytes, or None when the key is absent."""

    @abstractmethod
    async def set(self, key: str, data: bytes) -> None:
        """Store bytes under key (upsert).

        Raises:
            QuotaExceededError: The medium has no room for the write.
            CacheIOError: Any other storage failure.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is not an error."""

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with prefix."""

    async def close(self) -> None:
        """Release backend resources."""
