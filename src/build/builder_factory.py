# src/build/builder_factory.py — v1
"""Factory: instantiate the image builder from configuration."""

from __future__ import annotations

import logging

from shipline.build.base_builder import BaseImageBuilder
from shipline.config.settings import Settings

logger = logging.getLogger(__name__)


def create_builder(settings: Settings) -> BaseImageBuilder:
    """Create the image builder for the configured backend.

    Raises:
        ValueError: If the backend is not supported.
    """
    if settings.builder_backend == "docker":
        from shipline.build.docker_builder import DockerImageBuilder

        logger.debug("Creating docker image builder (no_cache=%s)", settings.build_no_cache)
        return DockerImageBuilder(no_cache=settings.build_no_cache)

    raise ValueError(f"Unsupported build backend: {settings.builder_backend!r}")
