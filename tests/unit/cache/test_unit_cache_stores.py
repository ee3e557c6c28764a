# tests/unit/cache/test_unit_cache_stores.py — v2
"""Tests for the byte store backends: memory, JSON files, SQLite."""

from __future__ import annotations

import errno
import sqlite3
from pathlib import Path
from unittest.mock import patch

import pytest

from seoanalyzer.cache.base_cache_store import (
    BaseCacheStore,
    CacheIOError,
    QuotaExceededError,
)
from seoanalyzer.cache.json_store import JsonCacheStore
from seoanalyzer.cache.memory_store import MemoryCacheStore
from seoanalyzer.cache.sqlite_store import SqliteCacheStore


class TestBaseCacheStore:
    def test_cannot_instantiate(self):
        with pytest.raises(TypeError):
            BaseCacheStore()  # type: ignore[abstract]

    def test_has_required_methods(self):
        for method in ["get", "set", "delete", "keys", "close"]:
            assert hasattr(BaseCacheStore, method)

    def test_quota_error_is_io_error(self):
        assert issubclass(QuotaExceededError, CacheIOError)


@pytest.fixture(params=["memory", "json", "sqlite"])
def store(request, tmp_path: Path) -> BaseCacheStore:
    if request.param == "memory":
        return MemoryCacheStore()
    if request.param == "json":
        return JsonCacheStore(cache_root=tmp_path / "json")
    return SqliteCacheStore(db_path=tmp_path / "cache.db")


class TestStoreContract:
    @pytest.mark.asyncio
    async def test_set_and_get(self, store):
        await store.set("p:example.com:abc", b'{"x": 1}')
        assert await store.get("p:example.com:abc") == b'{"x": 1}'

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get("nope") is None

    @pytest.mark.asyncio
    async def test_overwrite(self, store):
        await store.set("k", b"one")
        await store.set("k", b"two")
        assert await store.get("k") == b"two"
        assert await store.keys() == ["k"]

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, store):
        await store.set("k", b"v")
        await store.delete("k")
        await store.delete("k")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_keys_by_prefix(self, store):
        await store.set("a:1", b"1")
        await store.set("a:2", b"2")
        await store.set("b:1", b"3")
        assert sorted(await store.keys("a:")) == ["a:1", "a:2"]
        assert len(await store.keys()) == 3

    @pytest.mark.asyncio
    async def test_close(self, store):
        await store.close()


class TestMemoryCacheStore:
    @pytest.mark.asyncio
    async def test_quota_rejects_oversized_write(self):
        store = MemoryCacheStore(max_bytes=10)
        await store.set("a", b"12345")
        with pytest.raises(QuotaExceededError):
            await store.set("b", b"123456")
        assert await store.get("b") is None

    @pytest.mark.asyncio
    async def test_quota_counts_replaced_value_once(self):
        store = MemoryCacheStore(max_bytes=10)
        await store.set("a", b"1234567890")
        await store.set("a", b"0987654321")
        assert store.total_bytes == 10


class TestJsonCacheStore:
    @pytest.mark.asyncio
    async def test_one_file_per_key(self, tmp_path: Path):
        store = JsonCacheStore(cache_root=tmp_path)
        await store.set("k1", b"{}")
        await store.set("k2", b"{}")
        assert len(list(tmp_path.glob("*.json"))) == 2

    @pytest.mark.asyncio
    async def test_creates_root(self, tmp_path: Path):
        root = tmp_path / "nested" / "cache"
        JsonCacheStore(cache_root=root)
        assert root.is_dir()

    @pytest.mark.asyncio
    async def test_corrupt_file_returned_raw(self, tmp_path: Path):
        store = JsonCacheStore(cache_root=tmp_path)
        await store.set("k", b"{}")
        path = next(tmp_path.glob("*.json"))
        path.write_text("{not json", encoding="utf-8")
        assert await store.get("k") == b"{not json"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content",
        [b"{not json", b'{"key": "seo:a.com:x\xff\xfe garbled', b'{"key": 3, "data": "x"}'],
    )
    async def test_unreadable_file_removed_on_listing(self, tmp_path: Path, content: bytes):
        store = JsonCacheStore(cache_root=tmp_path)
        await store.set("seo:a.com:x", b"{}")
        await store.set("seo:b.com:y", b"{}")
        garbled = store._entry_path("seo:a.com:x")
        garbled.write_bytes(content)

        assert await store.keys("seo:") == ["seo:b.com:y"]
        assert not garbled.exists()
        assert len(list(tmp_path.glob("*.json"))) == 1

    @pytest.mark.asyncio
    async def test_write_leaves_no_temp_file(self, tmp_path: Path):
        store = JsonCacheStore(cache_root=tmp_path)
        await store.set("k", b"{}")
        await store.set("k", b'{"v": 2}')
        assert [p.suffix for p in tmp_path.iterdir()] == [".json"]
        assert await store.get("k") == b'{"v": 2}'

    @pytest.mark.asyncio
    async def test_quota(self, tmp_path: Path):
        store = JsonCacheStore(cache_root=tmp_path, max_bytes=60)
        await store.set("k1", b"small")
        with pytest.raises(QuotaExceededError):
            await store.set("k2", b"x" * 100)

    @pytest.mark.asyncio
    async def test_disk_full_maps_to_quota(self, tmp_path: Path):
        store = JsonCacheStore(cache_root=tmp_path)
        full = OSError(errno.ENOSPC, "No space left on device")
        with patch.object(Path, "write_text", side_effect=full):
            with pytest.raises(QuotaExceededError):
                await store.set("k", b"{}")

    @pytest.mark.asyncio
    async def test_other_os_error_maps_to_io_error(self, tmp_path: Path):
        store = JsonCacheStore(cache_root=tmp_path)
        denied = OSError(errno.EACCES, "Permission denied")
        with patch.object(Path, "write_text", side_effect=denied):
            with pytest.raises(CacheIOError) as exc_info:
                await store.set("k", b"{}")
        assert not isinstance(exc_info.value, QuotaExceededError)

    @pytest.mark.asyncio
    async def test_non_utf8_payload_rejected(self, tmp_path: Path):
        store = JsonCacheStore(cache_root=tmp_path)
        with pytest.raises(CacheIOError):
            await store.set("k", b"\xff\xfe")


class TestSqliteCacheStore:
    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path: Path):
        db = tmp_path / "cache.db"
        store = SqliteCacheStore(db_path=db)
        await store.set("k", b"payload")
        await store.close()

        reopened = SqliteCacheStore(db_path=db)
        assert await reopened.get("k") == b"payload"
        await reopened.close()

    @pytest.mark.asyncio
    async def test_quota(self, tmp_path: Path):
        store = SqliteCacheStore(db_path=tmp_path / "cache.db", max_bytes=8)
        await store.set("a", b"1234")
        with pytest.raises(QuotaExceededError):
            await store.set("b", b"12345")
        await store.close()

    @pytest.mark.asyncio
    async def test_database_full_maps_to_quota(self, tmp_path: Path):
        store = SqliteCacheStore(db_path=tmp_path / "cache.db")

        class _FullConnection:
            def execute(self, *args, **kwargs):
                raise sqlite3.OperationalError("database or disk is full")

            def rollback(self):
                pass

        store._conn = _FullConnection()  # type: ignore[assignment]
        with pytest.raises(QuotaExceededError):
            await store.set("k", b"v")

    @pytest.mark.asyncio
    async def test_read_error_maps_to_io_error(self, tmp_path: Path):
        store = SqliteCacheStore(db_path=tmp_path / "cache.db")
        await store.close()
        with pytest.raises(CacheIOError):
            await store.get("k")
