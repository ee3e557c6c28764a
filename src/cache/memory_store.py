# src/cache/memory_store.py — v1
"""In-process cache store (CACHE_BACKEND=memory).

Dict-backed, lost on exit. An optional byte quota emulates a bounded medium
such as browser storage, which makes the quota-recovery path testable.
"""

from __future__ import annotations

from seoanalyzer.cache.base_cache_store import BaseCacheStore, QuotaExceededError


class MemoryCacheStore(BaseCacheStore):
    """Dictionary-backed cache store with an optional total byte quota."""

    def __init__(self, max_bytes: int | None = None) -> None:
        self._data: dict[str, bytes] = {}
        self._max_bytes = max_bytes

    async def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    async def set(self, key: str, data: bytes) -> None:
        if self._max_bytes is not None:
            used = self.total_bytes - len(self._data.get(key, b""))
            if used + len(data) > self._max_bytes:
                raise QuotaExceededError(
                    f"write of {len(data)} bytes exceeds quota "
                    f"({used}/{self._max_bytes} bytes used)"
                )
        self._data[key] = bytes(data)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]

    @property
    def total_bytes(self) -> int:
        """Bytes currently held across all keys."""
        return sum(len(v) for v in self._data.values())
