# src/logging/context.py — v1
"""Contextual logging support — attach run_id, stage and service to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per pipeline run.
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)
_service: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "service", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    stage: str | None = None
    service: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        stage=_stage.get(),
        service=_service.get(),
    )


def set_run_context(run_id: str) -> None:
    """Set run-level context (called once per pipeline run)."""
    _run_id.set(run_id)


def set_stage_context(stage: str, service: str | None = None) -> None:
    """Set stage-level context (called per stage execution).

    Concurrent stages run in separate asyncio tasks, each with its own
    copy of the context, so sibling builds do not clobber each other.
    """
    _stage.set(stage)
    _service.set(service)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _stage.set(None)
    _service.set(None)


def clear_stage_context() -> None:
    """Reset stage-level context, keeping the run id."""
    _stage.set(None)
    _service.set(None)
