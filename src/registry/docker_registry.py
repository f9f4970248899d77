# src/registry/docker_registry.py — v1
"""Docker registry client using the docker SDK.

Pushes go through the local daemon, which holds the built image. The
auth config from ``login`` is passed explicitly on every push and lookup
so the daemon's own credential store is never written.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import docker
from docker.errors import APIError, DockerException, NotFound

from shipline.core.errors import AuthFailure, PublishFailure
from shipline.core.models import Artifact, RegistryCredentials
from shipline.registry.base_registry import BaseRegistryClient

logger = logging.getLogger(__name__)

_AUTH_MARKERS = ("unauthorized", "authentication required", "denied", "401")


def _is_auth_error(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _AUTH_MARKERS)


class DockerRegistryClient(BaseRegistryClient):
    """Publish and resolve images in a Docker-compatible registry."""

    def __init__(
        self,
        registry: str = "",
        client: docker.DockerClient | None = None,
    ) -> None:
        self._registry = registry
        self._client = client
        self._auth_config: dict[str, str] | None = None

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    @property
    def backend_name(self) -> str:
        return "docker"

    async def login(self, credentials: RegistryCredentials) -> None:
        registry = credentials.registry or self._registry
        try:
            await asyncio.to_thread(
                self.client.login,
                username=credentials.username,
                password=credentials.password.get_secret_value(),
                registry=registry or None,
                reauth=True,
            )
        except APIError as exc:
            if exc.status_code == 401 or _is_auth_error(str(exc)):
                raise AuthFailure(
                    f"Registry {registry or 'default'} rejected credentials for "
                    f"'{credentials.username}'"
                ) from exc
            raise PublishFailure(registry or "registry", f"login failed: {exc}") from exc
        except DockerException as exc:
            raise PublishFailure(registry or "registry", f"login failed: {exc}") from exc

        self._auth_config = {
            "username": credentials.username,
            "password": credentials.password.get_secret_value(),
        }
        logger.info("Logged in to registry %s as %s", registry or "default", credentials.username)

    async def publish(self, artifact: Artifact, tags: list[str]) -> str:
        if not tags:
            raise PublishFailure(artifact.repository, "no tags given")
        return await asyncio.to_thread(self._publish_sync, artifact, tags)

    def _publish_sync(self, artifact: Artifact, tags: list[str]) -> str:
        published: list[str] = []
        digest: str | None = None
        try:
            image = self.client.images.get(artifact.image_id)
        except (NotFound, APIError) as exc:
            raise PublishFailure(artifact.reference(), f"image not in local store: {exc}") from exc

        for tag in tags:
            reference = f"{artifact.repository}:{tag}"
            try:
                image.tag(artifact.repository, tag=tag)
                stream = self.client.api.push(
                    artifact.repository,
                    tag=tag,
                    stream=True,
                    decode=True,
                    auth_config=self._auth_config,
                )
                tag_digest = _consume_push_stream(reference, stream, published)
            except (AuthFailure, PublishFailure):
                raise
            except APIError as exc:
                if exc.status_code == 401 or _is_auth_error(str(exc)):
                    raise AuthFailure(f"Registry rejected push of {reference}") from exc
                raise PublishFailure(reference, str(exc), published) from exc
            except DockerException as exc:
                raise PublishFailure(reference, str(exc), published) from exc

            digest = digest or tag_digest
            published.append(tag)
            logger.info("Pushed %s (%s)", reference, tag_digest or "no digest reported")

        return digest or ""

    async def resolve(self, name: str, tag: str) -> str:
        reference = f"{name}:{tag}"
        try:
            data = await asyncio.to_thread(
                self.client.images.get_registry_data,
                reference,
                auth_config=self._auth_config,
            )
        except NotFound as exc:
            raise PublishFailure(reference, "tag not found in registry") from exc
        except APIError as exc:
            if exc.status_code == 401 or _is_auth_error(str(exc)):
                raise AuthFailure(f"Registry rejected lookup of {reference}") from exc
            raise PublishFailure(reference, f"resolve failed: {exc}") from exc
        return data.id


def _consume_push_stream(
    reference: str,
    stream: Any,
    published: list[str],
) -> str | None:
    """Drain a decoded push stream; raise on the first error chunk."""
    digest: str | None = None
    for chunk in stream:
        if "error" in chunk:
            message = chunk.get("errorDetail", {}).get("message") or chunk["error"]
            if _is_auth_error(message):
                raise AuthFailure(f"Registry rejected push of {reference}: {message}")
            raise PublishFailure(reference, message, published)
        aux = chunk.get("aux")
        if isinstance(aux, dict) and aux.get("Digest"):
            digest = aux["Digest"]
    return digest
