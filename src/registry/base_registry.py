# src/registry/base_registry.py — v1
"""Abstract artifact registry client interface.

The registry owns the tag → artifact pointers. Clients never cache them:
``resolve`` always asks the registry, and may still observe a stale
pointer shortly after a publish.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from shipline.core.models import Artifact, RegistryCredentials


class BaseRegistryClient(ABC):
    """Unified interface for artifact registries."""

    @abstractmethod
    async def login(self, credentials: RegistryCredentials) -> None:
        """Authenticate against the registry.

        Raises:
            AuthFailure: If the credentials are rejected.
        """

    @abstractmethod
    async def publish(self, artifact: Artifact, tags: list[str]) -> str:
        """Upload ``artifact`` under each tag, one tag at a time.

        Tags are not updated atomically: a failure partway leaves the
        earlier tags pointing at the new artifact.

        Returns:
            Registry digest of the published artifact.

        Raises:
            AuthFailure: If the registry rejects the push as unauthorized.
            PublishFailure: On network, quota or other push errors.
        """

    @abstractmethod
    async def resolve(self, name: str, tag: str) -> str:
        """Return the digest the registry currently serves for ``name:tag``.

        The runner calls this after each publish to confirm every tag
        points at the pushed digest before anything is deployed.
        """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Backend identifier (docker)."""
