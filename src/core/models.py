# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr

RunStateName = Literal["idle", "building", "publishing", "deploying", "succeeded", "failed"]
StageStatus = Literal["pending", "running", "succeeded", "failed", "skipped"]

SERVICES: tuple[str, ...] = ("backend", "frontend")


def stage_names(services: tuple[str, ...] | list[str] = SERVICES) -> list[str]:
    """Ordered stage names: every build, then every publish, then deploy."""
    return (
        [f"build-{s}" for s in services]
        + [f"publish-{s}" for s in services]
        + ["deploy"]
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_run_id(timestamp: datetime | None = None) -> str:
    """Generate a sortable run_id: yyyymmdd_hhmmss_{uuid4_short}."""
    ts = timestamp or _utcnow()
    return f"{ts.strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"


# === CREDENTIALS ===


class RegistryCredentials(BaseModel):
    """Registry login, supplied at trigger time and never persisted."""

    username: str
    password: SecretStr
    registry: str = ""


class HostCredentials(BaseModel):
    """SSH login for the target host.

    Either ``key_path`` or ``password`` must be set.
    """

    username: str = "root"
    key_path: Path | None = None
    password: SecretStr | None = None
    port: int = 22


# === TRIGGER ===


class Trigger(BaseModel):
    """Event that starts a Pipeline Run. Carries no payload beyond 'run now'."""

    kind: Literal["push", "manual"] = "manual"
    branch: str | None = None
    revision: str | None = None

    def matches_branch(self, designated: str) -> bool:
        """Manual triggers always match; pushes only on the designated branch."""
        if self.kind == "manual":
            return True
        return self.branch == designated


# === ARTIFACTS ===


class BuildTarget(BaseModel):
    """What to build for one service."""

    service: str
    context: Path
    repository: str
    recipe: str = "Dockerfile"


class Artifact(BaseModel):
    """Immutable build output for one service."""

    service: str
    repository: str
    tags: list[str] = Field(default_factory=list)
    context: Path
    image_id: str
    digest: str | None = None
    built_at: datetime = Field(default_factory=_utcnow)

    def reference(self, tag: str | None = None) -> str:
        """Return ``repository:tag`` (first tag when none given)."""
        chosen = tag or (self.tags[0] if self.tags else "latest")
        return f"{self.repository}:{chosen}"


# === RUNTIME ===


class RuntimeInstance(BaseModel):
    """Running container for one service on the target host."""

    service: str
    container_id: str | None = None
    image_id: str | None = None
    running: bool = False


class ApplyResult(BaseModel):
    """Outcome of one composition apply."""

    pulled: list[str] = Field(default_factory=list)
    recreated: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.recreated


# === PIPELINE RUN ===


class StageResult(BaseModel):
    """Result of a single pipeline stage."""

    name: str
    status: StageStatus = "pending"
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    error_type: str | None = None
    log: list[str] = Field(default_factory=list)

    @property
    def duration_ms(self) -> int | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)


class PipelineRun(BaseModel):
    """One end-to-end execution of build → publish → deploy."""

    run_id: str = Field(default_factory=generate_run_id)
    trigger: Trigger = Field(default_factory=Trigger)
    state: RunStateName = "idle"
    stages: list[StageResult] = Field(
        default_factory=lambda: [StageResult(name=n) for n in stage_names()]
    )
    artifacts: dict[str, Artifact] = Field(default_factory=dict)
    changed_services: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None

    @classmethod
    def for_services(cls, services: list[str], **kwargs: object) -> PipelineRun:
        """New run with one build and one publish stage per service."""
        return cls(stages=[StageResult(name=n) for n in stage_names(services)], **kwargs)  # type: ignore[arg-type]

    def stage(self, name: str) -> StageResult:
        """Return the stage result with the given name."""
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise KeyError(name)

    @property
    def succeeded(self) -> bool:
        return self.state == "succeeded"

    @property
    def failed_stages(self) -> list[str]:
        return [s.name for s in self.stages if s.status == "failed"]
