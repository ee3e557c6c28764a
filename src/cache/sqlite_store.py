# src/cache/sqlite_store.py — v2
"""SQLite-based cache store (CACHE_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency.
Better performance than JSON once the cache holds many analyses.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from seoanalyzer.cache.base_cache_store import (
    BaseCacheStore,
    CacheIOError,
    QuotaExceededError,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    data BLOB NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


class SqliteCacheStore(BaseCacheStore):
    """SQLite-backed cache store for better performance at scale.

    Args:
        db_path: Database file location (parents are created).
        max_bytes: Optional cap on total payload bytes.
    """

    def __init__(self, db_path: Path | str, max_bytes: int | None = None) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._max_bytes = max_bytes
        self._conn = sqlite3.connect(str(self._db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    async def get(self, key: str) -> bytes | None:
        """Retrieve payload by key."""
        try:
            cursor = self._conn.execute(
                "SELECT data FROM cache_entries WHERE key = ?", (key,)
            )
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise CacheIOError(f"Failed to read cache key {key}: {e}") from e
        if row is None:
            return None
        data = row[0]
        return data.encode("utf-8") if isinstance(data, str) else bytes(data)

    async def set(self, key: str, data: bytes) -> None:
        """Store payload (upsert)."""
        if self._max_bytes is not None:
            used = self._used_bytes(excluding=key)
            if used + len(data) > self._max_bytes:
                raise QuotaExceededError(
                    f"write of {len(data)} bytes exceeds quota "
                    f"({used}/{self._max_bytes} bytes used)"
                )
        try:
            self._conn.execute(
                """INSERT OR REPLACE INTO cache_entries (key, data, updated_at)
                   VALUES (?, ?, CURRENT_TIMESTAMP)""",
                (key, sqlite3.Binary(data)),
            )
            self._conn.commit()
        except sqlite3.OperationalError as e:
            self._conn.rollback()
            if "full" in str(e).lower():
                raise QuotaExceededError(str(e)) from e
            raise CacheIOError(f"Failed to write cache key {key}: {e}") from e
        except sqlite3.Error as e:
            self._conn.rollback()
            raise CacheIOError(f"Failed to write cache key {key}: {e}") from e

    async def delete(self, key: str) -> None:
        """Remove a cache entry."""
        try:
            self._conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            self._conn.commit()
        except sqlite3.Error as e:
            raise CacheIOError(f"Failed to delete cache key {key}: {e}") from e

    async def keys(self, prefix: str = "") -> list[str]:
        """List keys starting with prefix."""
        try:
            cursor = self._conn.execute("SELECT key FROM cache_entries")
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise CacheIOError(f"Failed to list cache keys: {e}") from e
        return [row[0] for row in rows if row[0].startswith(prefix)]

    async def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def _used_bytes(self, excluding: str) -> int:
        cursor = self._conn.execute(
            "SELECT COALESCE(SUM(LENGTH(data)), 0) FROM cache_entries WHERE key != ?",
            (excluding,),
        )
        return int(cursor.fetchone()[0])
