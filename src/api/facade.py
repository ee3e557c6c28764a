# src/api/facade.py — v2
"""Public API facade: single entry point for site analysis.

Usage:
    from seoanalyzer.api.facade import analyze
    run = await analyze(request, crawler, ranker, providers)
    if run.report is not None:
        ...
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from seoanalyzer.cache.cache_factory import create_cache_store
from seoanalyzer.cache.result_cache import ResultCache
from seoanalyzer.config.settings import Settings
from seoanalyzer.pipeline.orchestrator import PipelineOrchestrator

if TYPE_CHECKING:
    from seoanalyzer.cache.base_cache_store import BaseCacheStore
    from seoanalyzer.core.models import AnalysisRequest
    from seoanalyzer.pipeline.collaborators import (
        AnalysisProviders,
        BaseCrawler,
        BaseRanker,
    )
    from seoanalyzer.pipeline.state import PipelineRun

logger = logging.getLogger(__name__)


def create_result_cache(
    settings: Settings | None = None,
    store: BaseCacheStore | None = None,
) -> ResultCache:
    """Build a ResultCache from settings.

    Args:
        settings: Global settings. Loaded from .env if None.
        store: Byte store to use instead of the configured backend.
    """
    settings = settings or Settings()
    backend = store if store is not None else create_cache_store(settings)
    return ResultCache(
        backend,
        ttl=settings.cache_ttl,
        max_entries=settings.cache_max_entries,
        evict_batch=settings.cache_evict_batch,
        cleanup_interval=settings.cache_cleanup_interval,
        key_prefix=settings.cache_key_prefix,
    )


def create_orchestrator(
    crawler: BaseCrawler,
    ranker: BaseRanker,
    providers: AnalysisProviders,
    settings: Settings | None = None,
    cache_store: BaseCacheStore | None = None,
    result_cache: ResultCache | None = None,
) -> PipelineOrchestrator:
    """Wire an orchestrator with its result cache.

    An explicit ``result_cache`` wins over ``cache_store``; with
    ``settings.cache_enabled`` false the orchestrator runs without cache.
    """
    settings = settings or Settings()
    if result_cache is None and settings.cache_enabled:
        result_cache = create_result_cache(settings, store=cache_store)
    elif not settings.cache_enabled:
        result_cache = None
    logger.debug(
        "Orchestrator created (cache=%s)",
        type(result_cache.backend).__name__ if result_cache else "disabled",
    )
    return PipelineOrchestrator(
        crawler, ranker, providers, result_cache=result_cache, settings=settings,
    )


async def analyze(
    request: AnalysisRequest,
    crawler: BaseCrawler,
    ranker: BaseRanker,
    providers: AnalysisProviders,
    settings: Settings | None = None,
    cache_store: BaseCacheStore | None = None,
) -> PipelineRun:
    """Analyze a site end-to-end and return the terminal run.

    The run is returned whether it completed or failed: check
    ``run.status`` and ``run.error``; partial results stay on ``run.partial``.

    Raises:
        InputError: If the request URLs are unusable (no run is started).
    """
    orchestrator = create_orchestrator(
        crawler, ranker, providers, settings=settings, cache_store=cache_store,
    )
    result_cache = orchestrator.result_cache
    try:
        return await orchestrator.run(request)
    finally:
        if result_cache is not None:
            await result_cache.drain()
            await result_cache.aclose()
