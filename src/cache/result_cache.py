# src/cache/result_cache.py — v2
"""Domain-level analysis cache built on a byte store.

Entries are keyed by (site domain, URL-set fingerprint) and hold the two
expensive payloads of a full run: site-wide findings and per-page findings.

Behaviour:
  - TTL is checked lazily on read; expired or corrupt entries are deleted on
    the spot and reported as a miss.
  - A sweep of all entries runs in the background at most once per cleanup
    interval, tracked through ``CacheMetadata.last_cleanup_at``.
  - A write rejected for quota evicts the oldest entries and retries once.
  - After each successful write a background task trims the cache to
    ``max_entries``, oldest first.

The cache is best-effort: storage failures are logged and degrade to a miss
or a skipped write, never an exception for the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError

from seoanalyzer.cache.base_cache_store import (
    BaseCacheStore,
    CacheIOError,
    QuotaExceededError,
)
from seoanalyzer.cache.fingerprint import (
    compute_fingerprint,
    extract_domain,
    make_cache_key,
)
from seoanalyzer.cache.models import (
    CachedAnalysis,
    CacheEntry,
    CacheMetadata,
    CacheStats,
)

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "seo-analyzer-cache-v1"
DEFAULT_TTL = timedelta(days=7)
DEFAULT_MAX_ENTRIES = 50
DEFAULT_EVICT_BATCH = 5
DEFAULT_CLEANUP_INTERVAL = timedelta(hours=1)

Clock = Callable[[], datetime]

_NEVER_CLEANED = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResultCache:
    """Persistent cache of full-pipeline results.

    Args:
        store: Byte store backend.
        ttl: Default entry lifetime.
        max_entries: Ceiling enforced after each write.
        evict_batch: Entries evicted before the single retry on quota errors.
        cleanup_interval: Minimum spacing between expired-entry sweeps.
        key_prefix: Namespace for every key this cache writes.
        clock: Returns the current aware datetime (injectable for tests).
    """

    def __init__(
        self,
        store: BaseCacheStore,
        ttl: timedelta = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        evict_batch: int = DEFAULT_EVICT_BATCH,
        cleanup_interval: timedelta = DEFAULT_CLEANUP_INTERVAL,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._max_entries = max_entries
        self._evict_batch = evict_batch
        self._cleanup_interval = cleanup_interval
        self._prefix = key_prefix
        self._clock = clock or _utcnow
        self._metadata_key = f"{key_prefix}:metadata"
        self._maintenance_lock = asyncio.Lock()
        self._background: set[asyncio.Task[None]] = set()

    @property
    def backend(self) -> BaseCacheStore:
        return self._store

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def lookup(self, domain_url: str, urls: Iterable[str]) -> CachedAnalysis | None:
        """Return cached payloads for this site and URL set, if still valid."""
        self._spawn(self._sweep_expired(), "sweep")

        domain, key = self._resolve(domain_url, urls)
        try:
            raw = await self._store.get(key)
        except CacheIOError as e:
            logger.warning("Cache read failed for %s: %s", domain, e)
            return None

        if raw is None:
            logger.info("Cache miss for %s", domain)
            return None

        entry = self._parse_entry(raw)
        if entry is None:
            logger.warning("Corrupt cache entry for %s, removing", domain)
            await self._remove_entry(key)
            return None

        now = self._clock()
        if entry.is_expired(now):
            logger.info("Cache expired for %s", domain)
            await self._remove_entry(key)
            return None

        age_hours = (now - entry.created_at).total_seconds() / 3600
        logger.info("Cache hit for %s (%.0fh old)", domain, age_hours)
        return CachedAnalysis(
            site_wide=entry.site_wide,
            per_page=entry.per_page,
            created_at=entry.created_at,
        )

    async def store(
        self,
        domain_url: str,
        urls: Iterable[str],
        site_wide: dict[str, Any],
        per_page: dict[str, Any],
        ttl: timedelta | None = None,
    ) -> bool:
        """Write the payloads for this site and URL set.

        Returns:
            True when the entry was persisted, False when the write was
            abandoned (the caller never needs to act on it).
        """
        url_list = list(urls)
        domain, key = self._resolve(domain_url, url_list)
        entry = CacheEntry(
            domain=domain,
            fingerprint=compute_fingerprint(url_list),
            created_at=self._clock(),
            ttl=ttl if ttl is not None else self._ttl,
            site_wide=site_wide,
            per_page=per_page,
        )
        payload = entry.model_dump_json().encode("utf-8")

        try:
            is_new = await self._store.get(key) is None
        except CacheIOError:
            is_new = True

        try:
            await self._store.set(key, payload)
        except QuotaExceededError as e:
            logger.warning(
                "Storage quota exceeded (%s), evicting %d oldest entries",
                e, self._evict_batch,
            )
            await self._evict_oldest(self._evict_batch)
            try:
                await self._store.set(key, payload)
            except CacheIOError as retry_error:
                logger.error(
                    "Failed to cache analysis for %s even after eviction: %s",
                    domain, retry_error,
                )
                return False
            logger.info("Cached analysis for %s after eviction", domain)
        except CacheIOError as e:
            logger.warning("Failed to cache analysis for %s: %s", domain, e)
            return False

        if is_new:
            await self._adjust_entry_count(+1)
        logger.info(
            "Cached analysis for %s (%.1fKB)", domain, len(payload) / 1024,
        )
        self._spawn(self._enforce_limit(), "enforce-limit")
        return True

    async def invalidate(self, domain_url: str, urls: Iterable[str]) -> None:
        """Remove the entry for this site and URL set, if present."""
        domain, key = self._resolve(domain_url, urls)
        try:
            existed = await self._store.get(key) is not None
            await self._store.delete(key)
        except CacheIOError as e:
            logger.warning("Failed to invalidate cache for %s: %s", domain, e)
            return
        if existed:
            await self._adjust_entry_count(-1)
        logger.info("Cleared cache for %s", domain)

    async def clear(self, pattern: str = "*") -> int:
        """Delete every cache key containing pattern ("*" matches all).

        Returns:
            Number of entries removed.
        """
        async with self._maintenance_lock:
            try:
                keys = await self._entry_keys()
                targets = [k for k in keys if pattern == "*" or pattern in k]
                for key in targets:
                    await self._store.delete(key)
                remaining = len(keys) - len(targets)
            except CacheIOError as e:
                logger.warning("Failed to clear cache: %s", e)
                return 0

            metadata = await self._read_metadata()
            metadata.entry_count = remaining
            metadata.last_cleanup_at = self._clock()
            await self._write_metadata(metadata)

        logger.info("Cleared %d cache entries", len(targets))
        return len(targets)

    async def stats(self) -> CacheStats:
        """Scan parsable, unexpired entries and summarize them."""
        stats = CacheStats()
        now = self._clock()
        try:
            keys = await self._entry_keys()
            for key in keys:
                raw = await self._store.get(key)
                if raw is None:
                    continue
                entry = self._parse_entry(raw)
                if entry is None or entry.is_expired(now):
                    continue
                stats.entry_count += 1
                stats.total_bytes += len(raw)
                if stats.oldest_created_at is None or entry.created_at < stats.oldest_created_at:
                    stats.oldest_created_at = entry.created_at
                if stats.newest_created_at is None or entry.created_at > stats.newest_created_at:
                    stats.newest_created_at = entry.created_at
        except CacheIOError as e:
            logger.warning("Failed to compute cache stats: %s", e)
        return stats

    async def metadata(self) -> CacheMetadata:
        """Current persisted counters."""
        return await self._read_metadata()

    async def drain(self) -> None:
        """Wait until all background maintenance tasks have finished."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel outstanding maintenance and close the store."""
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*list(self._background), return_exceptions=True)
        await self._store.close()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def _sweep_expired(self) -> None:
        """Delete expired and unreadable entries, throttled by cleanup interval."""
        async with self._maintenance_lock:
            metadata, recovered = await self._ensure_metadata()
            now = self._clock()
            if not recovered and now - metadata.last_cleanup_at < self._cleanup_interval:
                return

            removed = kept = 0
            scanned = False
            try:
                for key in await self._entry_keys():
                    raw = await self._store.get(key)
                    if raw is None:
                        continue
                    entry = self._parse_entry(raw)
                    if entry is None or entry.is_expired(now):
                        await self._store.delete(key)
                        removed += 1
                    else:
                        kept += 1
                scanned = True
            except CacheIOError as e:
                logger.warning("Cache sweep failed: %s", e)

            if removed:
                logger.info("Cleaned up %d expired cache entries", removed)
            metadata.last_cleanup_at = now
            if scanned or recovered:
                # A full scan knows the true count, including files the store dropped.
                metadata.entry_count = kept
            else:
                metadata.entry_count = max(0, metadata.entry_count - removed)
            await self._write_metadata(metadata)

    async def _enforce_limit(self) -> None:
        """Trim the cache to max_entries, oldest first."""
        async with self._maintenance_lock:
            metadata = await self._read_metadata()
            if metadata.entry_count <= self._max_entries:
                return
            try:
                entries = await self._entries_by_age()
                excess = len(entries) - self._max_entries
                for key, _ in entries[:max(0, excess)]:
                    await self._store.delete(key)
            except CacheIOError as e:
                logger.warning("Failed to enforce cache limit: %s", e)
                return

            if excess > 0:
                logger.info(
                    "Removed %d oldest entries to maintain cache limit", excess,
                )
            metadata.entry_count = min(len(entries), self._max_entries)
            await self._write_metadata(metadata)

    async def _evict_oldest(self, count: int) -> None:
        """Remove the ``count`` oldest entries (quota recovery)."""
        async with self._maintenance_lock:
            try:
                entries = await self._entries_by_age()
                victims = entries[:count]
                for key, _ in victims:
                    await self._store.delete(key)
            except CacheIOError as e:
                logger.warning("Failed to evict oldest entries: %s", e)
                return
            logger.info("Removed %d oldest entries", len(victims))
            metadata = await self._read_metadata()
            metadata.entry_count = max(0, metadata.entry_count - len(victims))
            await self._write_metadata(metadata)

    async def _entries_by_age(self) -> list[tuple[str, datetime]]:
        """Parsable entries as (key, created_at), oldest first."""
        entries: list[tuple[str, datetime]] = []
        for key in await self._entry_keys():
            raw = await self._store.get(key)
            if raw is None:
                continue
            entry = self._parse_entry(raw)
            if entry is not None:
                entries.append((key, entry.created_at))
        entries.sort(key=lambda item: item[1])
        return entries

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve(self, domain_url: str, urls: Iterable[str]) -> tuple[str, str]:
        domain = extract_domain(domain_url)
        key = make_cache_key(self._prefix, domain, compute_fingerprint(urls))
        return domain, key

    async def _entry_keys(self) -> list[str]:
        keys = await self._store.keys(f"{self._prefix}:")
        return [k for k in keys if k != self._metadata_key]

    async def _remove_entry(self, key: str) -> None:
        try:
            existed = await self._store.get(key) is not None
            await self._store.delete(key)
        except CacheIOError as e:
            logger.warning("Failed to remove cache entry %s: %s", key, e)
            return
        if existed:
            await self._adjust_entry_count(-1)

    async def _adjust_entry_count(self, delta: int) -> None:
        async with self._maintenance_lock:
            metadata = await self._read_metadata()
            metadata.entry_count = max(0, metadata.entry_count + delta)
            await self._write_metadata(metadata)

    async def _ensure_metadata(self) -> tuple[CacheMetadata, bool]:
        """Read metadata, persisting a fresh record when none is usable.

        Returns:
            The metadata and whether the stored record was unparsable. A
            missing record on first use is not a recovery.
        """
        try:
            raw = await self._store.get(self._metadata_key)
        except CacheIOError as e:
            logger.warning("Failed to read cache metadata: %s", e)
            return CacheMetadata(last_cleanup_at=self._clock()), False

        metadata = self._parse_metadata(raw) if raw is not None else None
        if metadata is not None:
            return metadata, False
        metadata = CacheMetadata(last_cleanup_at=self._clock())
        await self._write_metadata(metadata)
        return metadata, raw is not None

    async def _read_metadata(self) -> CacheMetadata:
        try:
            raw = await self._store.get(self._metadata_key)
        except CacheIOError as e:
            logger.warning("Failed to read cache metadata: %s", e)
            raw = None
        if raw is None:
            return CacheMetadata(last_cleanup_at=self._clock())
        metadata = self._parse_metadata(raw)
        if metadata is None:
            # Unknown cleanup history: make the next sweep due immediately.
            return CacheMetadata(last_cleanup_at=_NEVER_CLEANED)
        return metadata

    @staticmethod
    def _parse_metadata(raw: bytes) -> CacheMetadata | None:
        try:
            return CacheMetadata.model_validate_json(raw)
        except (ValidationError, ValueError) as e:
            logger.warning("Failed to parse cache metadata: %s", e)
            return None

    async def _write_metadata(self, metadata: CacheMetadata) -> None:
        try:
            await self._store.set(
                self._metadata_key, metadata.model_dump_json().encode("utf-8"),
            )
        except CacheIOError as e:
            logger.warning("Failed to update cache metadata: %s", e)

    @staticmethod
    def _parse_entry(raw: bytes) -> CacheEntry | None:
        try:
            return CacheEntry.model_validate_json(raw)
        except (ValidationError, ValueError):
            return None

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=f"result-cache:{name}")
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task[None]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Cache maintenance task %s failed", task.get_name(), exc_info=exc,
            )
