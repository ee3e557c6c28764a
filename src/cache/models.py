# src/cache/models.py — v3
"""Cache domain models: CacheEntry, CacheMetadata, CachedAnalysis, CacheStats."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from pydantic import AwareDatetime, BaseModel, Field


class CacheEntry(BaseModel):
    """Stored result of one full analysis, keyed by (domain, fingerprint)."""

    domain: str
    fingerprint: str
    created_at: AwareDatetime
    ttl: timedelta
    site_wide: dict[str, Any] = Field(default_factory=dict)
    per_page: dict[str, Any] = Field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        """True once ``now - created_at`` exceeds the entry's ttl."""
        return now - self.created_at > self.ttl


class CacheMetadata(BaseModel):
    """Process-wide counters persisted next to the entries.

    Timestamps must carry a timezone: naive values fail validation, so a
    record written without one is handled like any other unreadable record.
    """

    version: str = "1.0"
    entry_count: int = 0
    last_cleanup_at: AwareDatetime


class CachedAnalysis(BaseModel):
    """Payload pair returned by a cache hit."""

    site_wide: dict[str, Any]
    per_page: dict[str, Any]
    created_at: AwareDatetime


class CacheStats(BaseModel):
    """Observability snapshot computed by scanning live entries."""

    entry_count: int = 0
    total_bytes: int = 0
    oldest_created_at: AwareDatetime | None = None
    newest_created_at: AwareDatetime | None = None
