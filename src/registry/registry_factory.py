# src/registry/registry_factory.py — v1
"""Factory: instantiate the registry client from configuration."""

from __future__ import annotations

from shipline.config.settings import Settings
from shipline.registry.base_registry import BaseRegistryClient


def create_registry(settings: Settings) -> BaseRegistryClient:
    """Create the registry client for the configured backend.

    Raises:
        ValueError: If the backend is not supported.
    """
    if settings.registry_backend == "docker":
        from shipline.registry.docker_registry import DockerRegistryClient

        return DockerRegistryClient(registry=settings.registry_url)

    raise ValueError(f"Unsupported registry backend: {settings.registry_backend!r}")
