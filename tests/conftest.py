# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides a controllable clock, in-memory stores, stub collaborators and
sample requests. No external services: all I/O is in memory or under tmp_path.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from seoanalyzer.cache.memory_store import MemoryCacheStore
from seoanalyzer.cache.result_cache import ResultCache
from seoanalyzer.core.models import AnalysisRequest
from seoanalyzer.pipeline.collaborators import (
    AnalysisProviders,
    BaseAnalysisProvider,
    BaseCrawler,
    BaseRanker,
)

SITE_URL = "https://example.com/"
SITEMAP_URL = "https://example.com/sitemap.xml"
SITE_URLS = [
    "https://example.com/",
    "https://example.com/about",
    "https://example.com/blog/post-1",
    "https://example.com/pricing",
]


class FakeClock:
    """Manually advanced clock returning aware datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class StubCrawler(BaseCrawler):
    """Returns a fixed URL set, reporting one progress tick per URL."""

    def __init__(self, urls: Sequence[str] = SITE_URLS, error: Exception | None = None) -> None:
        self.urls = list(urls)
        self.error = error
        self.calls: list[str] = []

    async def crawl(self, seed_url, on_progress):
        self.calls.append(seed_url)
        if self.error is not None:
            raise self.error
        total = len(self.urls)
        for i, _ in enumerate(self.urls, start=1):
            on_progress(i, total, seed_url)
        return set(self.urls)


class StubRanker(BaseRanker):
    """Reverse lexicographic order, recording its input."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def rank(self, urls):
        self.calls.append(list(urls))
        return sorted(urls, reverse=True)


class StubProvider(BaseAnalysisProvider):
    """Returns a tagged payload; can fail, hang or return a fixed result."""

    def __init__(
        self,
        name: str,
        error: Exception | None = None,
        delay: float = 0.0,
        result: Any = None,
        messages: Sequence[str] = (),
    ) -> None:
        self.name = name
        self.error = error
        self.delay = delay
        self.result = result
        self.messages = list(messages)
        self.calls: list[Any] = []
        self.started = asyncio.Event()
        self.cancelled = False

    async def run(self, config, inputs, on_progress):
        self.calls.append(inputs)
        self.started.set()
        for message in self.messages:
            on_progress(message)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        if self.result is not None:
            return self.result
        return {"provider": self.name}


def make_providers(**overrides: BaseAnalysisProvider) -> AnalysisProviders:
    names = ("competitor", "technical", "content", "actionplan", "summary")
    providers = {name: overrides.get(name) or StubProvider(name) for name in names}
    return AnalysisProviders(**providers)


# === FIXTURES ===


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Drop handlers installed by CLI or setup_logging tests."""
    yield
    root = logging.getLogger("seoanalyzer")
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def result_cache(memory_store: MemoryCacheStore, clock: FakeClock) -> ResultCache:
    return ResultCache(memory_store, clock=clock)


@pytest.fixture
def sample_request() -> AnalysisRequest:
    return AnalysisRequest(
        site_url=SITE_URL,
        sitemap_url=SITEMAP_URL,
        competitor_sitemaps=["https://rival.example.org/sitemap.xml"],
        analysis_type="ecommerce",
        location="Berlin",
    )


@pytest.fixture
def crawler() -> StubCrawler:
    return StubCrawler()


@pytest.fixture
def ranker() -> StubRanker:
    return StubRanker()


@pytest.fixture
def providers() -> AnalysisProviders:
    return make_providers()
