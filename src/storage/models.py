# src/storage/models.py — v2
"""Storage domain models: LedgerSummary."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class LedgerSummary(BaseModel):
    """Aggregate view over all recorded runs."""

    total_runs: int = 0
    succeeded: int = 0
    failed: int = 0
    unfinished: int = 0
    last_run_id: str | None = None
    last_state: str | None = None
    last_completed_at: datetime | None = None
    failures_by_stage: dict[str, int] = Field(default_factory=dict)
