# src/pipeline/errors.py — v1
"""Pipeline error taxonomy.

Cache failures are not listed here: they live in
``seoanalyzer.cache.base_cache_store`` and never leave the result cache.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors that terminate a run."""


class InputError(PipelineError):
    """Request rejected before any run was started."""


class CollaboratorError(PipelineError):
    """An external collaborator (crawler, ranker, provider) failed a stage."""

    def __init__(self, stage_id: str, message: str) -> None:
        super().__init__(message)
        self.stage_id = stage_id
        self.message = message


class PipelineCancelledError(PipelineError):
    """Run aborted by the caller."""


class InvalidTransitionError(PipelineError):
    """A stage was asked to make a transition its state machine forbids."""
