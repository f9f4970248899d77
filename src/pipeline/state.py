# src/pipeline/state.py — v2
r"""Pipeline Run state machine.

    idle -> building -> publishing -> deploying -> succeeded
                 \            \            \
                  +------------+------------+--> failed

Transitions are checked: a run can never reach ``deploying`` without
passing through ``publishing``, nor ``publishing`` without ``building``.
Terminal states accept no further transition, so a failed run cannot be
resumed; a new trigger starts a new run from ``idle``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from shipline.core.errors import InvalidTransition
from shipline.core.models import PipelineRun, RunStateName

logger = logging.getLogger(__name__)

TRANSITIONS: dict[str, frozenset[str]] = {
    "idle": frozenset({"building"}),
    "building": frozenset({"publishing", "failed"}),
    "publishing": frozenset({"deploying", "failed"}),
    "deploying": frozenset({"succeeded", "failed"}),
    "succeeded": frozenset(),
    "failed": frozenset(),
}

TERMINAL_STATES = frozenset({"succeeded", "failed"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStateMachine:
    """Drive a PipelineRun through its states and stage results."""

    def __init__(self, run: PipelineRun) -> None:
        self._run = run

    @property
    def run(self) -> PipelineRun:
        return self._run

    @property
    def state(self) -> RunStateName:
        return self._run.state

    @property
    def is_terminal(self) -> bool:
        return self._run.state in TERMINAL_STATES

    def advance(self, target: RunStateName) -> None:
        """Move to ``target``.

        Raises:
            InvalidTransition: If ``target`` is not reachable from the
                current state.
        """
        current = self._run.state
        if target not in TRANSITIONS[current]:
            raise InvalidTransition(f"Illegal transition {current} -> {target}")
        self._run.state = target
        logger.info("Run %s: %s -> %s", self._run.run_id, current, target)
        if target in TERMINAL_STATES:
            self._run.completed_at = _utcnow()
            self._skip_pending()

    def fail(self) -> None:
        """Shortcut for ``advance("failed")``."""
        self.advance("failed")

    # --- Stage bookkeeping ---

    def start_stage(self, name: str) -> None:
        stage = self._run.stage(name)
        stage.status = "running"
        stage.started_at = _utcnow()

    def finish_stage(self, name: str) -> None:
        stage = self._run.stage(name)
        stage.status = "succeeded"
        stage.completed_at = _utcnow()

    def fail_stage(self, name: str, error: BaseException) -> None:
        stage = self._run.stage(name)
        stage.status = "failed"
        stage.completed_at = _utcnow()
        stage.error = str(error)
        stage.error_type = type(error).__name__

    def _skip_pending(self) -> None:
        for stage in self._run.stages:
            if stage.status == "pending":
                stage.status = "skipped"
