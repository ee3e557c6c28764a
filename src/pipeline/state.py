# src/pipeline/state.py — v2
"""Mutable run state shared by all stages of one pipeline execution.

``PipelineRun`` owns the stages, the activity log and the partial results.
All mutation goes through its methods so that every change is logged and
broadcast to listeners as a ``RunEvent``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, PrivateAttr

from seoanalyzer.core.models import (
    ActivityLogEntry,
    AnalysisReport,
    AnalysisRequest,
    Severity,
)
from seoanalyzer.pipeline.stage import PipelineStage, StageDefinition, StageStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETE, RunStatus.ERROR)


class PartialResults(BaseModel):
    """Results published so far. Each slot is written at most once per run."""

    discovered_urls: list[str] | None = None
    urls_discovered: int | None = None
    analyzed_urls: list[str] | None = None
    urls_analyzed: int | None = None
    competitor: dict[str, Any] | None = None
    technical: dict[str, Any] | None = None
    site_wide: dict[str, Any] | None = None
    per_page: dict[str, Any] | None = None
    action_plan: dict[str, Any] | None = None
    executive_summary: dict[str, Any] | None = None

    def publish(self, slot: str, value: Any) -> None:
        """Fill a slot.

        Raises:
            KeyError: Unknown slot.
            ValueError: Slot already written in this run.
        """
        if slot not in type(self).model_fields:
            raise KeyError(f"Unknown partial result slot: {slot!r}")
        if getattr(self, slot) is not None:
            raise ValueError(f"Partial result slot {slot!r} already written")
        setattr(self, slot, value)

    def reset(self) -> None:
        """Clear every slot (run restart)."""
        for slot in type(self).model_fields:
            setattr(self, slot, None)


class RunEvent(BaseModel):
    """Change notification delivered to run listeners."""

    kind: Literal["stage", "log", "partial", "status"]
    run_id: str
    data: dict[str, Any] = Field(default_factory=dict)


RunListener = Callable[[RunEvent], None]


class PipelineRun(BaseModel):
    """One execution context: stages, activity log, partial results.

    Args:
        strict: Reject invalid stage transitions loudly (development/test).
    """

    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    request: AnalysisRequest
    stages: list[PipelineStage] = Field(default_factory=list)
    log: list[ActivityLogEntry] = Field(default_factory=list)
    partial: PartialResults = Field(default_factory=PartialResults)
    status: RunStatus = RunStatus.PENDING
    error: str | None = None
    cancelled: bool = False
    cache_hit: bool | None = None
    started_at: datetime = Field(default_factory=_utcnow)
    ended_at: datetime | None = None
    report: AnalysisReport | None = None
    strict: bool = True

    _listeners: list[RunListener] = PrivateAttr(default_factory=list)
    _clock: Callable[[], datetime] = PrivateAttr(default=_utcnow)

    @classmethod
    def create(
        cls,
        request: AnalysisRequest,
        definitions: Sequence[StageDefinition],
        strict: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> PipelineRun:
        now_fn = clock or _utcnow
        run = cls(
            request=request,
            stages=[PipelineStage.from_definition(d) for d in definitions],
            started_at=now_fn(),
            strict=strict,
        )
        run._clock = now_fn
        return run

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def stage(self, stage_id: str) -> PipelineStage:
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        raise KeyError(f"Unknown stage: {stage_id!r}")

    def running_stages(self) -> list[PipelineStage]:
        return [s for s in self.stages if s.status is StageStatus.RUNNING]

    @property
    def overall_progress(self) -> float:
        """Unweighted mean of stage progress."""
        if not self.stages:
            return 0.0
        return sum(s.progress for s in self.stages) / len(self.stages)

    def estimated_remaining(self, now: datetime | None = None) -> timedelta | None:
        """Linear extrapolation of elapsed time; None before any progress."""
        progress = self.overall_progress
        if progress <= 0:
            return None
        elapsed = (now or self._clock()) - self.started_at
        return elapsed / progress * (100 - progress)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def now(self) -> datetime:
        """Current time on the run clock."""
        return self._clock()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: RunListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _emit(self, kind: str, **data: Any) -> None:
        event = RunEvent(kind=kind, run_id=self.run_id, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Run listener failed on %s event", kind)

    # ------------------------------------------------------------------
    # Mutation API
    # ------------------------------------------------------------------

    def add_log(
        self,
        message: str,
        severity: Severity = Severity.INFO,
        stage_id: str | None = None,
    ) -> ActivityLogEntry:
        entry = ActivityLogEntry(
            timestamp=self._clock(), message=message,
            severity=severity, stage_id=stage_id,
        )
        self.log.append(entry)
        logger.debug("[%s] %s", stage_id or "pipeline", message)
        self._emit("log", entry=entry.model_dump(mode="json"))
        return entry

    def publish(self, slot: str, value: Any) -> None:
        self.partial.publish(slot, value)
        self._emit("partial", slot=slot)

    def start_stage(self, stage_id: str, task: str | None = None) -> None:
        stage = self.stage(stage_id)
        if stage.start(self._clock(), task=task, strict=self.strict):
            self._emit_stage(stage)

    def update_stage(
        self,
        stage_id: str,
        progress: float | None = None,
        current_task: str | None = None,
        items_processed: int | None = None,
        total_items: int | None = None,
    ) -> None:
        stage = self.stage(stage_id)
        if stage.update(
            progress=progress,
            current_task=current_task,
            items_processed=items_processed,
            total_items=total_items,
            strict=self.strict,
        ):
            self._emit_stage(stage)

    def complete_stage(self, stage_id: str) -> None:
        stage = self.stage(stage_id)
        if stage.complete(self._clock(), strict=self.strict):
            self._emit_stage(stage)

    def fail_stage(self, stage_id: str, message: str) -> None:
        stage = self.stage(stage_id)
        if stage.fail(self._clock(), message, strict=self.strict):
            self._emit_stage(stage)

    def skip_stage(self, stage_id: str) -> None:
        stage = self.stage(stage_id)
        if stage.skip(self._clock(), strict=self.strict):
            self._emit_stage(stage)

    def mark_running(self) -> None:
        self.status = RunStatus.RUNNING
        self._emit("status", status=self.status.value)

    def finish(self) -> None:
        """Terminal success."""
        self.status = RunStatus.COMPLETE
        self.ended_at = self._clock()
        self._emit("status", status=self.status.value)

    def abort(self, message: str, cancelled: bool = False) -> None:
        """Terminal failure: force running stages to error, keep partial results."""
        stage_message = "Cancelled by caller" if cancelled else message
        for stage in self.running_stages():
            self.fail_stage(stage.id, stage_message)
        self.status = RunStatus.ERROR
        self.error = message
        self.cancelled = cancelled
        self.ended_at = self._clock()
        self.add_log(f"Analysis failed: {message}", Severity.ERROR)
        self._emit("status", status=self.status.value, error=message, cancelled=cancelled)

    def _emit_stage(self, stage: PipelineStage) -> None:
        self._emit("stage", stage=stage.model_dump(mode="json"))
