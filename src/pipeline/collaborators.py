# src/pipeline/collaborators.py — v1
"""Contracts for the external collaborators driven by the orchestrator.

The crawler, ranker and AI analysis providers are black boxes. The
orchestrator only relies on the interfaces below; plain functions can be
wrapped with the ``Callable*`` adapters.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

CrawlProgress = Callable[[int, int, str], None]
"""on_progress(count, total, label) reported by the crawler."""

ProviderProgress = Callable[[str], None]
"""on_progress(message) reported by analysis providers."""


class AnalysisInputs(BaseModel):
    """Input to the competitor, technical and content providers."""

    site_url: str
    urls: list[str]
    competitor_urls: list[str] = Field(default_factory=list)
    analysis_type: str = "general"
    location: str | None = None


class SynthesisInputs(BaseModel):
    """Input to the action plan and executive summary providers."""

    site_url: str
    site_wide: dict[str, Any]
    per_page: dict[str, Any]


class BaseCrawler(ABC):
    """Discovers the page URLs of a site from a seed (sitemap) URL."""

    @abstractmethod
    async def crawl(self, seed_url: str, on_progress: CrawlProgress) -> set[str]:
        """Return every discovered page URL.

        Raises:
            Exception: Seed unreachable or no pages; message is shown to users.
        """


class BaseRanker(ABC):
    """Orders URLs by descending estimated SEO value. Pure and synchronous."""

    @abstractmethod
    def rank(self, urls: Sequence[str]) -> list[str]:
        """Return urls, most valuable first."""


class BaseAnalysisProvider(ABC):
    """One AI analysis step."""

    @abstractmethod
    async def run(
        self,
        config: dict[str, Any],
        inputs: BaseModel,
        on_progress: ProviderProgress,
    ) -> dict[str, Any]:
        """Produce a structured result.

        Raises:
            Exception: Network, quota or malformed-response failures.
        """


@dataclass(frozen=True)
class AnalysisProviders:
    """The five providers a full run needs."""

    competitor: BaseAnalysisProvider
    technical: BaseAnalysisProvider
    content: BaseAnalysisProvider
    actionplan: BaseAnalysisProvider
    summary: BaseAnalysisProvider

    def for_stage(self, stage_id: str) -> BaseAnalysisProvider:
        try:
            return getattr(self, stage_id)
        except AttributeError as e:
            raise KeyError(f"No provider for stage {stage_id!r}") from e


class CallableCrawler(BaseCrawler):
    """Adapt ``async def crawl(seed_url, on_progress)`` to BaseCrawler."""

    def __init__(self, fn: Callable[[str, CrawlProgress], Awaitable[set[str]]]) -> None:
        self._fn = fn

    async def crawl(self, seed_url: str, on_progress: CrawlProgress) -> set[str]:
        return await self._fn(seed_url, on_progress)


class CallableRanker(BaseRanker):
    """Adapt ``def rank(urls)`` to BaseRanker."""

    def __init__(self, fn: Callable[[Sequence[str]], Sequence[str]]) -> None:
        self._fn = fn

    def rank(self, urls: Sequence[str]) -> list[str]:
        return list(self._fn(urls))


class CallableProvider(BaseAnalysisProvider):
    """Adapt a sync or async ``fn(config, inputs, on_progress)`` to a provider."""

    def __init__(self, fn: Callable[..., Any]) -> None:
        self._fn = fn

    async def run(
        self,
        config: dict[str, Any],
        inputs: BaseModel,
        on_progress: ProviderProgress,
    ) -> dict[str, Any]:
        result = self._fn(config, inputs, on_progress)
        if inspect.isawaitable(result):
            result = await result
        return result
