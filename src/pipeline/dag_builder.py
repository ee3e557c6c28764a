# src/pipeline/dag_builder.py — v2
"""DAG builder: build the stage execution graph from stage dependencies.

Produces a topologically sorted execution plan. Detects cycles
and validates that all dependencies are resolvable.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from seoanalyzer.pipeline.stage import StageDefinition

logger = logging.getLogger(__name__)


class DAGError(Exception):
    """Raised when DAG construction fails (cycle, missing dep)."""


@dataclass
class ExecutionPlan:
    """Ordered execution plan for pipeline stages.

    levels is a list of groups: stages within the same level can run
    concurrently (no mutual dependencies). Levels execute sequentially.
    """

    levels: list[list[str]] = field(default_factory=list)
    total_stages: int = 0

    @property
    def flat_order(self) -> list[str]:
        """Return a flat topological ordering (no concurrency info)."""
        return [stage for level in self.levels for stage in level]

    def level_of(self, stage_id: str) -> int:
        for idx, level in enumerate(self.levels):
            if stage_id in level:
                return idx
        raise KeyError(f"Stage {stage_id!r} not in plan")


def build_dag(
    dependency_map: dict[str, list[str]],
    order_hint: list[str] | None = None,
) -> ExecutionPlan:
    """Build an execution DAG from stage dependency declarations.

    Uses Kahn's algorithm for topological sort with level detection.
    Each level contains stages whose dependencies are fully resolved
    by previous levels.

    Args:
        dependency_map: stage id -> list of dependency stage ids.
        order_hint: Preferred ordering of stages inside a level
            (declaration order). Stages not listed sort alphabetically last.

    Returns:
        ExecutionPlan with staged execution order.

    Raises:
        DAGError: If a cycle is detected or a dependency is missing.
    """
    if not dependency_map:
        return ExecutionPlan()

    all_stages = set(dependency_map.keys())
    for stage, deps in dependency_map.items():
        for dep in deps:
            if dep not in all_stages:
                raise DAGError(
                    f"Stage '{stage}' depends on '{dep}' which is not defined"
                )

    rank = {s: i for i, s in enumerate(order_hint or [])}

    def _ordered(items: Iterable[str]) -> list[str]:
        return sorted(items, key=lambda s: (rank.get(s, len(rank)), s))

    in_degree: dict[str, int] = {s: 0 for s in all_stages}
    dependents: dict[str, list[str]] = {s: [] for s in all_stages}

    for stage, deps in dependency_map.items():
        for dep in deps:
            dependents[dep].append(stage)
            in_degree[stage] += 1

    # Kahn's algorithm with level tracking
    levels: list[list[str]] = []
    queue = _ordered(s for s, d in in_degree.items() if d == 0)
    processed = 0

    while queue:
        levels.append(queue)
        next_queue: list[str] = []
        for stage in queue:
            processed += 1
            for dependent in dependents[stage]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    next_queue.append(dependent)
        queue = _ordered(next_queue)

    if processed != len(all_stages):
        remaining = sorted(s for s in all_stages if in_degree[s] > 0)
        raise DAGError(f"Cycle detected involving stages: {remaining}")

    plan = ExecutionPlan(levels=levels, total_stages=processed)
    logger.debug(
        "DAG built: %d stages in %d levels -> %s",
        plan.total_stages, len(plan.levels), plan.levels,
    )
    return plan


def plan_from_definitions(definitions: list[StageDefinition]) -> ExecutionPlan:
    """Build the plan for a list of stage definitions."""
    return build_dag(
        {d.id: list(d.depends_on) for d in definitions},
        order_hint=[d.id for d in definitions],
    )
