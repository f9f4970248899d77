# src/build/base_builder.py — v1
"""Abstract image builder interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from shipline.core.models import Artifact


class BaseImageBuilder(ABC):
    """Unified interface for image build backends."""

    @abstractmethod
    async def build(
        self,
        service: str,
        context: Path,
        repository: str,
        tags: list[str],
        recipe: str = "Dockerfile",
    ) -> Artifact:
        """Build one service image and tag it locally under every tag.

        Raises:
            BuildFailure: On recipe errors, missing dependencies or a
                failing build step.
        """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Backend identifier (docker)."""
