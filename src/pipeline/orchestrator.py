# src/pipeline/orchestrator.py — v2
"""Pipeline orchestrator: drives one site analysis from crawl to report.

Stage graph (executed level by level from the DAG):

    crawl ─► [cache junction] ─► rank ─► competitor ┐
                                         technical  ├─► actionplan ─► summary
                                         content    ┘

After the crawl the result cache is consulted. On a hit the four cacheable
stages are skipped and their payloads replayed from the cache; only the
action plan and the executive summary are regenerated. On a miss the full
path runs and the recombined payloads are written to the cache at the
fan-in point, before the synthesis stages start.

Every stage mutation goes through ``PipelineRun`` so it is logged and
broadcast. The first stage failure aborts the run; partial results stay
readable on the returned run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from pydantic import BaseModel

from seoanalyzer.cache.fingerprint import extract_domain
from seoanalyzer.core.models import AnalysisReport, AnalysisRequest, Severity
from seoanalyzer.logging.context import clear_context, set_run_context, set_stage_context
from seoanalyzer.pipeline.collaborators import (
    AnalysisInputs,
    AnalysisProviders,
    BaseCrawler,
    BaseRanker,
    SynthesisInputs,
)
from seoanalyzer.pipeline.dag_builder import plan_from_definitions
from seoanalyzer.pipeline.errors import (
    CollaboratorError,
    InputError,
    PipelineCancelledError,
    PipelineError,
)
from seoanalyzer.pipeline.stage import StageDefinition, StageStatus
from seoanalyzer.pipeline.state import PipelineRun, RunEvent, RunStatus

if TYPE_CHECKING:
    from seoanalyzer.cache.result_cache import ResultCache
    from seoanalyzer.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_MAX_URLS = 100

STAGE_DEFINITIONS: tuple[StageDefinition, ...] = (
    StageDefinition(
        id="crawl",
        name="Sitemap Discovery",
        description="Crawling sitemaps in parallel to extract all page URLs",
        start_task="Initializing parallel crawler...",
    ),
    StageDefinition(
        id="rank",
        name="URL Prioritization",
        description="Scoring and ranking URLs by strategic SEO value",
        start_task="Scoring URL importance...",
        depends_on=("crawl",),
    ),
    StageDefinition(
        id="competitor",
        name="Competitor Intelligence",
        description="Analyzing competitor content gaps and strategies",
        start_task="Analyzing competitor sitemaps...",
        depends_on=("rank",),
    ),
    StageDefinition(
        id="technical",
        name="Technical Health Scan",
        description="Auditing site architecture, speed, and crawlability",
        start_task="Auditing technical health...",
        depends_on=("rank",),
    ),
    StageDefinition(
        id="content",
        name="Content Analysis",
        description="Evaluating on-page SEO factors and content quality",
        start_task="Evaluating content quality...",
        depends_on=("rank",),
    ),
    StageDefinition(
        id="actionplan",
        name="Action Plan Generation",
        description="Creating prioritized implementation roadmap",
        start_task="Creating daily action items...",
        depends_on=("competitor", "technical", "content"),
    ),
    StageDefinition(
        id="summary",
        name="Executive Synthesis",
        description="Generating 80/20 executive summary with top priorities",
        start_task="Generating 80/20 analysis...",
        depends_on=("actionplan",),
    ),
)

CACHEABLE_STAGES: tuple[str, ...] = ("rank", "competitor", "technical", "content")
ANALYSIS_STAGES: tuple[str, ...] = ("competitor", "technical", "content")

CANCELLED_MESSAGE = "Analysis cancelled by caller"


class RunHandle:
    """Caller-side view of a submitted run.

    The run object is live: stages, log and partial results can be read at
    any time while the run task is executing.
    """

    def __init__(self, run: PipelineRun) -> None:
        self._run = run
        self._task: asyncio.Task[None] | None = None
        self.cancel_reason: str | None = None

    @property
    def run(self) -> PipelineRun:
        return self._run

    @property
    def run_id(self) -> str:
        return self._run.run_id

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> PipelineRun:
        """Wait for the run to reach a terminal status and return it.

        Cancelling the waiter does not cancel the run.
        """
        if self._task is None:
            return self._run
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.done():
                raise
        return self._run

    async def result(self) -> AnalysisReport:
        """Wait and return the report.

        Raises:
            PipelineCancelledError: The run was cancelled.
            PipelineError: The run ended in error.
        """
        run = await self.wait()
        if run.cancelled:
            raise PipelineCancelledError(run.error or CANCELLED_MESSAGE)
        if run.status is not RunStatus.COMPLETE or run.report is None:
            raise PipelineError(run.error or "Analysis did not complete")
        return run.report

    def cancel(self, reason: str | None = None) -> bool:
        """Request cancellation. Returns False if the run already finished."""
        if self._task is None or self._task.done():
            return False
        self.cancel_reason = reason
        logger.info("Cancelling run %s%s", self.run_id, f": {reason}" if reason else "")
        return self._task.cancel()

    async def events(self) -> AsyncIterator[RunEvent]:
        """Yield run events until the terminal status event."""
        queue: asyncio.Queue[RunEvent] = asyncio.Queue()
        remove = self._run.add_listener(queue.put_nowait)
        try:
            if self._run.is_terminal:
                return
            while True:
                event = await queue.get()
                yield event
                if event.kind == "status" and RunStatus(event.data["status"]).is_terminal:
                    return
        finally:
            remove()

    def _attach(self, task: asyncio.Task[None]) -> None:
        self._task = task
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        # A task cancelled before its first step never reaches _execute.
        if task.cancelled() and not self._run.is_terminal:
            self._run.abort(self.cancel_reason or CANCELLED_MESSAGE, cancelled=True)


class PipelineOrchestrator:
    """Runs analyses against injected collaborators.

    Args:
        crawler: Sitemap crawler.
        ranker: URL ranker.
        providers: The five AI analysis providers.
        result_cache: Optional result cache; None disables the cache junction.
        settings: Application settings (URL budget, strict transitions).
        clock: Returns the current aware datetime (injectable for tests).
    """

    def __init__(
        self,
        crawler: BaseCrawler,
        ranker: BaseRanker,
        providers: AnalysisProviders,
        result_cache: ResultCache | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._crawler = crawler
        self._ranker = ranker
        self._providers = providers
        self._cache = result_cache
        self._max_urls = settings.pipeline_max_urls if settings else DEFAULT_MAX_URLS
        self._strict = settings.pipeline_strict_transitions if settings else True
        self._clock = clock
        self._definitions = {d.id: d for d in STAGE_DEFINITIONS}
        self._plan = plan_from_definitions(list(STAGE_DEFINITIONS))
        self._handlers = {
            "crawl": self._stage_crawl,
            "rank": self._stage_rank,
            "competitor": self._stage_analysis,
            "technical": self._stage_analysis,
            "content": self._stage_analysis,
            "actionplan": self._stage_actionplan,
            "summary": self._stage_summary,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def result_cache(self) -> ResultCache | None:
        return self._cache

    def submit(self, request: AnalysisRequest) -> RunHandle:
        """Validate the request and start the run as a background task.

        Must be called from within a running event loop.

        Raises:
            InputError: The request is unusable; no run is created.
        """
        validate_request(request)
        run = PipelineRun.create(
            request, STAGE_DEFINITIONS, strict=self._strict, clock=self._clock,
        )
        handle = RunHandle(run)
        handle._attach(
            asyncio.create_task(
                self._execute(run, handle), name=f"pipeline-run:{run.run_id}",
            )
        )
        logger.info("Submitted run %s for %s", run.run_id, request.site_url)
        return handle

    async def run(self, request: AnalysisRequest) -> PipelineRun:
        """Submit and wait for the terminal run."""
        return await self.submit(request).wait()

    def cancel(self, handle: RunHandle, reason: str | None = None) -> bool:
        return handle.cancel(reason)

    # ------------------------------------------------------------------
    # Run driver
    # ------------------------------------------------------------------

    async def _execute(self, run: PipelineRun, handle: RunHandle) -> None:
        set_run_context(run.run_id, extract_domain(run.request.site_url))
        run.mark_running()
        try:
            for level in self._plan.levels:
                todo = [s for s in level if not run.stage(s).status.is_terminal]
                if len(todo) == 1:
                    await self._run_stage(run, todo[0])
                elif todo:
                    await self._run_parallel(run, todo)
                await self._after_level(run, level)

            run.add_log("Analysis complete! Building final report...", Severity.SUCCESS)
            run.report = self._build_report(run)
            run.finish()
            logger.info(
                "Run %s complete (cache_hit=%s)", run.run_id, run.cache_hit,
            )
        except asyncio.CancelledError:
            run.abort(handle.cancel_reason or CANCELLED_MESSAGE, cancelled=True)
            logger.warning("Run %s cancelled", run.run_id)
            raise
        except PipelineError as e:
            run.abort(str(e))
            logger.error("Run %s failed: %s", run.run_id, e)
        except Exception as e:
            logger.exception("Run %s failed unexpectedly", run.run_id)
            run.abort(str(e) or type(e).__name__)
        finally:
            clear_context()

    async def _run_stage(self, run: PipelineRun, stage_id: str) -> None:
        """Execute one stage; any failure becomes a CollaboratorError."""
        set_stage_context(stage_id)
        run.start_stage(stage_id, task=self._definitions[stage_id].start_task)
        try:
            await self._handlers[stage_id](run, stage_id)
        except asyncio.CancelledError:
            raise
        except CollaboratorError as e:
            run.fail_stage(stage_id, e.message)
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            run.fail_stage(stage_id, message)
            raise CollaboratorError(stage_id, message) from e
        finally:
            set_stage_context(None)
        run.complete_stage(stage_id)

    async def _run_parallel(self, run: PipelineRun, stage_ids: list[str]) -> None:
        """Run stages concurrently; the first failure cancels the others."""
        tasks = {
            asyncio.create_task(
                self._run_stage(run, sid), name=f"stage:{run.run_id}:{sid}",
            ): sid
            for sid in stage_ids
        }
        try:
            done, pending = await asyncio.wait(
                tasks, return_when=asyncio.FIRST_EXCEPTION,
            )
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        failed = next(
            (t for t in done if not t.cancelled() and t.exception() is not None),
            None,
        )
        if failed is None:
            return

        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        error = failed.exception()
        failed_id = tasks[failed]
        for stage in run.running_stages():
            run.fail_stage(stage.id, f"Aborted: stage '{failed_id}' failed")
        if error is not None:
            raise error

    async def _after_level(self, run: PipelineRun, level: list[str]) -> None:
        if "crawl" in level:
            await self._cache_junction(run)
        elif set(ANALYSIS_STAGES) <= set(level) and not run.cache_hit:
            await self._fan_in(run)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _stage_crawl(self, run: PipelineRun, stage_id: str) -> None:
        run.add_log("Starting sitemap discovery...", stage_id=stage_id)

        def on_progress(count: int, total: int, label: str) -> None:
            self._report_progress(
                run, stage_id,
                progress=count / total * 100 if total > 0 else None,
                items_processed=count,
                total_items=total,
                current_task=f"Processing {label or 'sitemap'}...",
            )

        urls = await self._crawler.crawl(run.request.sitemap_url, on_progress)
        discovered = sorted(set(urls))
        if not discovered:
            raise CollaboratorError(
                stage_id,
                "Crawl complete, but no URLs were found. The sitemap might be "
                "empty or in a format that could not be parsed.",
            )
        run.publish("discovered_urls", discovered)
        run.publish("urls_discovered", len(discovered))
        run.add_log(f"Discovered {len(discovered)} URLs", Severity.SUCCESS, stage_id)

    async def _stage_rank(self, run: PipelineRun, stage_id: str) -> None:
        run.add_log("Prioritizing URLs by SEO value...", stage_id=stage_id)
        ranked = self._ranker.rank(run.partial.discovered_urls or [])
        selected = list(ranked[: self._max_urls])
        run.publish("analyzed_urls", selected)
        run.publish("urls_analyzed", len(selected))
        run.add_log(
            f"Ranked {len(ranked)} URLs, analyzing top {len(selected)}",
            Severity.SUCCESS, stage_id,
        )

    async def _stage_analysis(self, run: PipelineRun, stage_id: str) -> None:
        request = run.request
        inputs = AnalysisInputs(
            site_url=request.site_url,
            urls=run.partial.analyzed_urls or [],
            competitor_urls=request.competitor_sitemaps,
            analysis_type=request.analysis_type,
            location=request.location,
        )
        result = await self._call_provider(run, stage_id, inputs)
        # content findings are the per-page payload
        run.publish("per_page" if stage_id == "content" else stage_id, result)
        run.add_log(
            f"{self._definitions[stage_id].name} complete", Severity.SUCCESS, stage_id,
        )

    async def _stage_actionplan(self, run: PipelineRun, stage_id: str) -> None:
        run.add_log("Generating implementation roadmap...", Severity.ANNOTATION, stage_id)
        result = await self._call_provider(run, stage_id, self._synthesis_inputs(run))
        run.publish("action_plan", result)
        run.add_log("Action plan generated", Severity.SUCCESS, stage_id)

    async def _stage_summary(self, run: PipelineRun, stage_id: str) -> None:
        run.add_log("Synthesizing executive summary...", Severity.ANNOTATION, stage_id)
        result = await self._call_provider(run, stage_id, self._synthesis_inputs(run))
        run.publish("executive_summary", result)
        run.add_log("Executive summary complete", Severity.SUCCESS, stage_id)

    # ------------------------------------------------------------------
    # Cache junction and fan-in
    # ------------------------------------------------------------------

    async def _cache_junction(self, run: PipelineRun) -> None:
        if self._cache is None:
            run.cache_hit = False
            return

        run.add_log("Checking for cached analysis...")
        try:
            cached = await self._cache.lookup(
                run.request.site_url, run.partial.discovered_urls or [],
            )
        except Exception:
            logger.warning("Cache lookup failed, running full analysis", exc_info=True)
            cached = None

        if cached is None:
            run.cache_hit = False
            run.add_log("No valid cache found, running full analysis...")
            return

        run.cache_hit = True
        run.add_log("Cache hit! Using cached analysis...", Severity.SUCCESS)
        for stage_id in CACHEABLE_STAGES:
            run.skip_stage(stage_id)
        for slot in ("competitor", "technical"):
            value = cached.site_wide.get(slot)
            if isinstance(value, Mapping):
                run.publish(slot, dict(value))
        run.publish("site_wide", cached.site_wide)
        run.publish("per_page", cached.per_page)

    async def _fan_in(self, run: PipelineRun) -> None:
        partial = run.partial
        site_wide = {"competitor": partial.competitor, "technical": partial.technical}
        run.publish("site_wide", site_wide)
        if self._cache is None:
            return

        run.add_log("Caching analysis for future use...")
        try:
            await self._cache.store(
                run.request.site_url,
                partial.discovered_urls or [],
                site_wide,
                partial.per_page or {},
            )
        except Exception:
            logger.warning("Cache store failed, continuing without cache", exc_info=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _call_provider(
        self, run: PipelineRun, stage_id: str, inputs: BaseModel,
    ) -> dict[str, Any]:
        provider = self._providers.for_stage(stage_id)

        def on_progress(message: str) -> None:
            if self._report_progress(run, stage_id, current_task=message):
                run.add_log(message, Severity.ANNOTATION, stage_id)

        result = await provider.run(run.request.provider_config, inputs, on_progress)
        if not isinstance(result, Mapping):
            raise CollaboratorError(
                stage_id,
                f"Malformed response from {stage_id} provider: "
                f"expected a mapping, got {type(result).__name__}",
            )
        return dict(result)

    @staticmethod
    def _report_progress(run: PipelineRun, stage_id: str, **fields: Any) -> bool:
        """Apply a progress report; late reports for a finished stage are dropped."""
        if run.stage(stage_id).status is not StageStatus.RUNNING:
            logger.debug("Dropped progress report for %s stage", stage_id)
            return False
        run.update_stage(stage_id, **fields)
        return True

    @staticmethod
    def _synthesis_inputs(run: PipelineRun) -> SynthesisInputs:
        return SynthesisInputs(
            site_url=run.request.site_url,
            site_wide=run.partial.site_wide or {},
            per_page=run.partial.per_page or {},
        )

    def _build_report(self, run: PipelineRun) -> AnalysisReport:
        request = run.request
        partial = run.partial
        return AnalysisReport(
            run_id=run.run_id,
            site_url=request.site_url,
            sitemap_url=request.sitemap_url,
            competitor_sitemaps=request.competitor_sitemaps,
            analysis_type=request.analysis_type,
            location=request.location,
            generated_at=run.now(),
            from_cache=bool(run.cache_hit),
            site_wide=partial.site_wide or {},
            per_page=partial.per_page or {},
            action_plan=partial.action_plan or {},
            executive_summary=partial.executive_summary or {},
        )


def validate_request(request: AnalysisRequest) -> None:
    """Reject requests whose URLs are not absolute http(s) URLs.

    Raises:
        InputError: On the first invalid URL.
    """
    _require_http_url("site_url", request.site_url)
    _require_http_url("sitemap_url", request.sitemap_url)
    for url in request.competitor_sitemaps:
        _require_http_url("competitor_sitemaps", url)


def _require_http_url(field_name: str, value: str) -> None:
    if not value or not value.strip():
        raise InputError(f"{field_name} is required")
    parts = urlsplit(value.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InputError(f"{field_name} must be an absolute http(s) URL: {value!r}")
