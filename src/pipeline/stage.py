# src/pipeline/stage.py — v1
"""Stage model: one pipeline step and its state machine.

    pending ──► running ──► complete
       │           │
       │           └──────► error
       └──────────────────► skipped   (cache replay only)

``running → running`` is an observational update (progress, task label,
item counts). Every other transition is rejected: with ``strict=True`` it
raises ``InvalidTransitionError``, otherwise it is logged and ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from seoanalyzer.pipeline.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StageStatus.COMPLETE, StageStatus.ERROR, StageStatus.SKIPPED)


_ALLOWED: dict[StageStatus, frozenset[StageStatus]] = {
    StageStatus.PENDING: frozenset({StageStatus.RUNNING, StageStatus.SKIPPED}),
    StageStatus.RUNNING: frozenset(
        {StageStatus.RUNNING, StageStatus.COMPLETE, StageStatus.ERROR}
    ),
    StageStatus.COMPLETE: frozenset(),
    StageStatus.ERROR: frozenset(),
    StageStatus.SKIPPED: frozenset(),
}


@dataclass(frozen=True)
class StageDefinition:
    """Static description of a stage, fixed when the pipeline is defined."""

    id: str
    name: str
    description: str
    start_task: str = ""
    depends_on: tuple[str, ...] = field(default_factory=tuple)


class PipelineStage(BaseModel):
    """Mutable status of one stage within a run."""

    id: str
    name: str
    description: str
    status: StageStatus = StageStatus.PENDING
    progress: float = 0.0
    items_processed: int | None = None
    total_items: int | None = None
    current_task: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error: str | None = None

    @classmethod
    def from_definition(cls, definition: StageDefinition) -> PipelineStage:
        return cls(
            id=definition.id,
            name=definition.name,
            description=definition.description,
        )

    def can_transition(self, target: StageStatus) -> bool:
        return target in _ALLOWED[self.status]

    def start(self, now: datetime, task: str | None = None, strict: bool = True) -> bool:
        """pending → running."""
        if not self._check(StageStatus.RUNNING, strict, update=False):
            return False
        self.status = StageStatus.RUNNING
        self.started_at = now
        self.current_task = None
        if task:
            self.current_task = task
        return True

    def update(
        self,
        progress: float | None = None,
        current_task: str | None = None,
        items_processed: int | None = None,
        total_items: int | None = None,
        strict: bool = True,
    ) -> bool:
        """running → running: observational fields only."""
        if not self._check(StageStatus.RUNNING, strict, update=True):
            return False
        if progress is not None:
            self.progress = min(100.0, max(0.0, float(progress)))
        if current_task is not None:
            self.current_task = current_task
        if items_processed is not None:
            self.items_processed = items_processed
        if total_items is not None:
            self.total_items = total_items
        return True

    def complete(self, now: datetime, strict: bool = True) -> bool:
        """running → complete."""
        if not self._check(StageStatus.COMPLETE, strict, update=False):
            return False
        self.status = StageStatus.COMPLETE
        self.progress = 100.0
        self.ended_at = now
        return True

    def fail(self, now: datetime, message: str, strict: bool = True) -> bool:
        """running → error. Progress is left where the stage died."""
        if not self._check(StageStatus.ERROR, strict, update=False):
            return False
        self.status = StageStatus.ERROR
        self.ended_at = now
        self.error = message
        return True

    def skip(self, now: datetime, strict: bool = True) -> bool:
        """pending → skipped (cache replay)."""
        if not self._check(StageStatus.SKIPPED, strict, update=False):
            return False
        self.status = StageStatus.SKIPPED
        self.progress = 100.0
        self.ended_at = now
        return True

    def _check(self, target: StageStatus, strict: bool, update: bool) -> bool:
        # A same-state move is only legal as an update of a running stage.
        allowed = self.can_transition(target) and (
            update or target is not self.status
        )
        if update and self.status is not StageStatus.RUNNING:
            allowed = False
        if allowed:
            return True
        message = (
            f"Invalid transition for stage '{self.id}': "
            f"{self.status.value} -> {target.value}"
        )
        if strict:
            raise InvalidTransitionError(message)
        logger.warning("%s (ignored)", message)
        return False
