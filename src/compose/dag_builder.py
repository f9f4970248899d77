# src/compose/dag_builder.py — v1
"""Dependency ordering for composition services.

Produces a topologically sorted plan from ``depends_on`` declarations.
Detects cycles and validates that all dependencies are declared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from shipline.core.errors import DescriptorError

logger = logging.getLogger(__name__)


class DAGError(DescriptorError):
    """Raised when ordering fails (cycle, missing dependency)."""


@dataclass
class ExecutionPlan:
    """Ordered plan of services.

    ``levels`` groups services whose dependencies are satisfied by all
    previous levels. The remote apply walks ``flat_order`` one service at
    a time; levels only document which services are independent.
    """

    levels: list[list[str]] = field(default_factory=list)
    total: int = 0

    @property
    def flat_order(self) -> list[str]:
        """Return a flat topological ordering."""
        return [name for level in self.levels for name in level]


def build_dag(dependency_map: dict[str, list[str]]) -> ExecutionPlan:
    """Build an ordering from service dependency declarations.

    Uses Kahn's algorithm with level detection; names inside a level are
    sorted so the order is deterministic.

    Args:
        dependency_map: service name -> list of services it depends on.

    Raises:
        DAGError: If a cycle is detected or a dependency is missing.
    """
    if not dependency_map:
        return ExecutionPlan()

    all_services = set(dependency_map)
    for service, deps in dependency_map.items():
        for dep in deps:
            if dep not in all_services:
                raise DAGError(
                    f"Service '{service}' depends on '{dep}' which is not declared"
                )

    in_degree: dict[str, int] = {s: 0 for s in all_services}
    dependents: dict[str, list[str]] = {s: [] for s in all_services}
    for service, deps in dependency_map.items():
        for dep in set(deps):
            dependents[dep].append(service)
            in_degree[service] += 1

    levels: list[list[str]] = []
    queue = sorted(s for s, d in in_degree.items() if d == 0)
    processed = 0

    while queue:
        levels.append(queue)
        next_queue: list[str] = []
        for service in queue:
            processed += 1
            for dependent in dependents[service]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    next_queue.append(dependent)
        queue = sorted(next_queue)

    if processed != len(all_services):
        remaining = sorted(s for s in all_services if in_degree[s] > 0)
        raise DAGError(f"Dependency cycle involving services: {remaining}")

    plan = ExecutionPlan(levels=levels, total=processed)
    logger.debug("Service order: %s", plan.flat_order)
    return plan
