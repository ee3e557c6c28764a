# src/cache/json_store.py — v3
"""JSON file-based cache store (default CACHE_BACKEND=json).

Stores each key as an individual JSON file under CACHE_ROOT. The file holds
the original key next to the payload so prefix listing does not depend on the
filename encoding. The directory belongs to the store: files that cannot be
read back are deleted when keys are listed, so sweeps and clears reach them.
"""

from __future__ import annotations

import errno
import hashlib
import json
import logging
import os
from pathlib import Path

from seoanalyzer.cache.base_cache_store import (
    BaseCacheStore,
    CacheIOError,
    QuotaExceededError,
)

logger = logging.getLogger(__name__)

_QUOTA_ERRNOS = {errno.ENOSPC, errno.EDQUOT}


class JsonCacheStore(BaseCacheStore):
    """File-based cache store using one JSON file per key."""

    def __init__(self, cache_root: Path | str, max_bytes: int | None = None) -> None:
        self._root = Path(cache_root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)
        self._max_bytes = max_bytes

    async def get(self, key: str) -> bytes | None:
        """Retrieve the payload stored under key."""
        path = self._entry_path(key)
        if not path.exists():
            return None
        record = self._read_record(path)
        if record is None:
            # Unreadable file: surface raw bytes so the caller treats it as corrupt.
            try:
                return path.read_bytes()
            except OSError as e:
                raise CacheIOError(f"Failed to read cache file {path}: {e}") from e
        return record["data"].encode("utf-8")

    async def set(self, key: str, data: bytes) -> None:
        """Write payload under key, replacing any previous file."""
        path = self._entry_path(key)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CacheIOError(f"JSON store only accepts UTF-8 payloads: {e}") from e
        serialized = json.dumps({"key": key, "data": text})

        if self._max_bytes is not None:
            current = path.stat().st_size if path.exists() else 0
            used = self._used_bytes() - current
            if used + len(serialized) > self._max_bytes:
                raise QuotaExceededError(
                    f"write of {len(serialized)} bytes exceeds quota "
                    f"({used}/{self._max_bytes} bytes used)"
                )

        tmp_path = path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(serialized, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            if e.errno in _QUOTA_ERRNOS:
                raise QuotaExceededError(str(e)) from e
            raise CacheIOError(f"Failed to write cache file {path}: {e}") from e

    async def delete(self, key: str) -> None:
        """Remove the file for key if present."""
        path = self._entry_path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise CacheIOError(f"Failed to delete cache file {path}: {e}") from e

    async def keys(self, prefix: str = "") -> list[str]:
        """List keys of all readable files matching prefix.

        Unreadable files carry no recoverable key and are removed.
        """
        found: list[str] = []
        if not self._root.is_dir():
            return found

        for path in self._root.glob("*.json"):
            record = self._read_record(path)
            if record is None:
                self._discard(path)
                continue
            if record["key"].startswith(prefix):
                found.append(record["key"])
        return found

    def _read_record(self, path: Path) -> dict[str, str] | None:
        try:
            record = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Failed to read cache file %s: %s", path, e)
            return None
        if not isinstance(record, dict) or not all(
            isinstance(record.get(field), str) for field in ("key", "data")
        ):
            logger.warning("Malformed cache file %s", path)
            return None
        return record

    def _discard(self, path: Path) -> None:
        logger.warning("Removing unreadable cache file %s", path)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise CacheIOError(f"Failed to delete cache file {path}: {e}") from e

    def _used_bytes(self) -> int:
        return sum(p.stat().st_size for p in self._root.glob("*.json"))

    def _entry_path(self, key: str) -> Path:
        """Return file path for a cache key."""
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        return self._root / f"{digest}.json"
