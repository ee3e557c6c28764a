# src/core/models.py — v2
"""Shared domain models: AnalysisRequest, ActivityLogEntry, AnalysisReport.

These types cross module boundaries (API, pipeline, cache) and carry no
behaviour beyond validation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Activity log severity levels."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    ANNOTATION = "annotation"


class AnalysisRequest(BaseModel):
    """One site analysis submission.

    ``site_url`` is the canonical site address; its host is the cache domain.
    ``sitemap_url`` seeds the crawler.
    """

    site_url: str
    sitemap_url: str
    competitor_sitemaps: list[str] = Field(default_factory=list)
    analysis_type: str = "general"
    location: str | None = None
    provider_config: dict[str, Any] = Field(default_factory=dict)


class ActivityLogEntry(BaseModel):
    """Single append-only activity log line. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    message: str
    severity: Severity = Severity.INFO
    stage_id: str | None = None


class AnalysisReport(BaseModel):
    """Final report assembled once every stage has finished."""

    run_id: str
    site_url: str
    sitemap_url: str
    competitor_sitemaps: list[str] = Field(default_factory=list)
    analysis_type: str = "general"
    location: str | None = None
    generated_at: datetime
    from_cache: bool = False
    site_wide: dict[str, Any] = Field(default_factory=dict)
    per_page: dict[str, Any] = Field(default_factory=dict)
    action_plan: dict[str, Any] = Field(default_factory=dict)
    executive_summary: dict[str, Any] = Field(default_factory=dict)
