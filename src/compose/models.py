# src/compose/models.py — v2
"""Composition descriptor models: ServiceSpec, CompositionDescriptor."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from shipline.compose.dag_builder import build_dag

_RESTART_POLICY = re.compile(r"^(no|always|unless-stopped|on-failure(:\d+)?)$")


def is_named_volume(binding: str) -> bool:
    """True for ``name:/path`` bindings, false for bind mounts."""
    source = binding.split(":", 1)[0]
    return bool(source) and not source.startswith((".", "/", "~", "$"))


class ServiceSpec(BaseModel):
    """One service entry of the descriptor.

    ``ports``, ``depends_on``, ``volumes`` and ``environment`` are
    normalized views. When the service was parsed from a file, ``raw``
    holds those keys exactly as written so rendering reproduces them.
    """

    name: str
    image: str
    ports: list[str] = Field(default_factory=list)
    depends_on: list[str] = Field(default_factory=list)
    restart: str = "unless-stopped"
    volumes: list[str] = Field(default_factory=list)
    environment: dict[str, str] = Field(default_factory=dict)
    extra: dict[str, Any] = Field(default_factory=dict)
    raw: dict[str, Any] | None = None

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str) -> str:  # noqa: N805
        if not v.strip():
            raise ValueError("image must not be empty")
        return v.strip()

    @field_validator("restart")
    @classmethod
    def validate_restart(cls, v: str) -> str:  # noqa: N805
        if not _RESTART_POLICY.match(v):
            raise ValueError(
                f"restart must be 'no', 'always', 'unless-stopped' or 'on-failure[:N]', got '{v}'"
            )
        return v

    @property
    def named_volumes(self) -> list[str]:
        return [b.split(":", 1)[0] for b in self.volumes if is_named_volume(b)]

    @property
    def image_repository(self) -> str:
        """Image reference without its tag."""
        ref = self.image.split("@", 1)[0]
        last_slash = ref.rfind("/")
        colon = ref.rfind(":")
        return ref[:colon] if colon > last_slash else ref


class CompositionDescriptor(BaseModel):
    """Declarative record of which artifacts run on the host and how.

    Invariants checked on construction: every dependency is declared,
    dependencies form no cycle, every named volume is declared at top
    level and is bound by exactly one service.
    """

    services: dict[str, ServiceSpec]
    volumes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    networks: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_consistency(self) -> CompositionDescriptor:
        if not self.services:
            raise ValueError("descriptor declares no services")

        # Raises DAGError on missing dependency or cycle.
        build_dag(self.dependency_map())

        owners: dict[str, str] = {}
        for spec in self.services.values():
            for volume in spec.named_volumes:
                if volume not in self.volumes:
                    raise ValueError(
                        f"service '{spec.name}' binds undeclared volume '{volume}'"
                    )
                if volume in owners and owners[volume] != spec.name:
                    raise ValueError(
                        f"volume '{volume}' bound by both '{owners[volume]}' and '{spec.name}'"
                    )
                owners[volume] = spec.name
        return self

    def dependency_map(self) -> dict[str, list[str]]:
        return {name: list(spec.depends_on) for name, spec in self.services.items()}

    def deploy_order(self) -> list[str]:
        """Services in dependency order (dependencies first)."""
        return build_dag(self.dependency_map()).flat_order

    def images(self) -> list[str]:
        """Distinct image references, in deploy order."""
        seen: list[str] = []
        for name in self.deploy_order():
            image = self.services[name].image
            if image not in seen:
                seen.append(image)
        return seen

    def with_image(self, service: str, image: str) -> CompositionDescriptor:
        """Return a copy with ``service`` pointed at ``image``."""
        if service not in self.services:
            raise KeyError(service)
        services = dict(self.services)
        services[service] = services[service].model_copy(update={"image": image})
        return self.model_copy(update={"services": services})
