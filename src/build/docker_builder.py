# src/build/docker_builder.py — v1
"""Docker Engine image builder using the docker SDK.

The SDK is blocking, so each build runs in a worker thread; two builds
can proceed concurrently because they share no state besides the
daemon, which serializes what it must.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import docker
from docker.errors import APIError, DockerException

from shipline.build.base_builder import BaseImageBuilder
from shipline.core.errors import BuildFailure
from shipline.core.models import Artifact

logger = logging.getLogger(__name__)


class DockerImageBuilder(BaseImageBuilder):
    """Build images against the local Docker daemon."""

    def __init__(
        self,
        client: docker.DockerClient | None = None,
        no_cache: bool = False,
        pull_base: bool = True,
    ) -> None:
        self._client = client
        self._no_cache = no_cache
        self._pull_base = pull_base

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    @property
    def backend_name(self) -> str:
        return "docker"

    async def build(
        self,
        service: str,
        context: Path,
        repository: str,
        tags: list[str],
        recipe: str = "Dockerfile",
    ) -> Artifact:
        context = Path(context)
        if not context.is_dir():
            raise BuildFailure(service, f"build context not found: {context}")
        if not (context / recipe).is_file():
            raise BuildFailure(service, f"recipe not found: {context / recipe}")
        if not tags:
            raise BuildFailure(service, "no tags given")

        image_id = await asyncio.to_thread(
            self._build_sync, service, context, repository, tags, recipe
        )
        logger.info("Built %s:%s (%s)", repository, ",".join(tags), image_id[:19])
        return Artifact(
            service=service,
            repository=repository,
            tags=list(tags),
            context=context,
            image_id=image_id,
        )

    def _build_sync(
        self,
        service: str,
        context: Path,
        repository: str,
        tags: list[str],
        recipe: str,
    ) -> str:
        log: list[str] = []
        image_id: str | None = None
        try:
            stream = self.client.api.build(
                path=str(context),
                dockerfile=recipe,
                tag=f"{repository}:{tags[0]}",
                rm=True,
                forcerm=True,
                nocache=self._no_cache,
                pull=self._pull_base,
                decode=True,
            )
            for chunk in stream:
                image_id = _consume_chunk(service, chunk, log) or image_id

            if image_id is None:
                raise BuildFailure(service, "build produced no image", log)

            image = self.client.images.get(image_id)
            for tag in tags[1:]:
                image.tag(repository, tag=tag)
        except BuildFailure:
            raise
        except (APIError, DockerException) as exc:
            raise BuildFailure(service, str(exc), log) from exc
        return image_id


def _consume_chunk(service: str, chunk: dict[str, Any], log: list[str]) -> str | None:
    """Record one decoded build-stream chunk; return the image id if announced."""
    if "error" in chunk:
        message = chunk.get("errorDetail", {}).get("message") or chunk["error"]
        log.append(message.rstrip())
        raise BuildFailure(service, message.strip(), log)

    text = chunk.get("stream", "")
    if text.strip():
        log.append(text.rstrip())
        logger.debug("%s", text.rstrip())

    aux = chunk.get("aux")
    if isinstance(aux, dict) and "ID" in aux:
        return aux["ID"]
    return None
