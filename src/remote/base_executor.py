# src/remote/base_executor.py — v1
"""Abstract remote executor and the composition apply sequence.

Backends provide a session (``connect``, ``run``, ``upload``, ``close``);
``apply`` is written once on top of them:

  1. upload the rendered descriptor to the host
  2. log the host's daemon in to the registry (when credentials given)
  3. pull every referenced image
  4. walk services in dependency order and recreate only those whose
     running container does not run the freshly pulled image

Steps run strictly one after another. The host is a single shared
resource, so no two recreates ever overlap. A failure stops the walk and
raises DeployFailure listing what was already recreated. There is no
rollback.
"""

from __future__ import annotations

import logging
import posixpath
import shlex
from abc import ABC, abstractmethod

from shipline.compose.descriptor import render_descriptor
from shipline.compose.models import CompositionDescriptor
from shipline.core.errors import DeployFailure
from shipline.core.models import (
    ApplyResult,
    HostCredentials,
    RegistryCredentials,
    RuntimeInstance,
)

logger = logging.getLogger(__name__)


class BaseRemoteExecutor(ABC):
    """Session to one target host plus the apply sequence.

    Args:
        project_dir: Directory on the host holding the descriptor.
        compose_file: Descriptor file name inside ``project_dir``.
        compose_command: Compose CLI invocation on the host.
        project_name: Compose project name (containers are scoped by it).
    """

    def __init__(
        self,
        project_dir: str = "/opt/tutorial-app",
        compose_file: str = "docker-compose.yml",
        compose_command: str = "docker compose",
        project_name: str = "tutorial-app",
    ) -> None:
        self._project_dir = project_dir
        self._compose_file = compose_file
        self._compose_command = compose_command
        self._project_name = project_name

    # --- Session (backend-specific) ---

    @abstractmethod
    async def connect(self, host: str, credentials: HostCredentials) -> None:
        """Open an authenticated session.

        Raises:
            AuthFailure: If the host rejects the credentials.
            ConnectTimeout: If the host is unreachable within the timeout.
        """

    @abstractmethod
    async def run(self, command: str, stdin: str | None = None) -> str:
        """Run one command and return its stripped stdout.

        Raises:
            DeployFailure: On a non-zero exit status or a lost session.
        """

    @abstractmethod
    async def upload(self, content: str, remote_path: str) -> None:
        """Write ``content`` to ``remote_path`` on the host."""

    @abstractmethod
    async def close(self) -> None:
        """Close the session. Safe to call when not connected."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Backend identifier (ssh)."""

    # --- Composition apply ---

    @property
    def compose_path(self) -> str:
        return posixpath.join(self._project_dir, self._compose_file)

    def _compose(self, *args: str) -> str:
        parts = [
            self._compose_command,
            "-f", shlex.quote(self.compose_path),
            "-p", shlex.quote(self._project_name),
            *args,
        ]
        return " ".join(parts)

    async def apply(
        self,
        descriptor: CompositionDescriptor,
        registry_credentials: RegistryCredentials | None = None,
    ) -> ApplyResult:
        """Bring the host in line with ``descriptor``.

        Re-applying an unchanged descriptor against unchanged images
        recreates nothing.

        Raises:
            DeployFailure: If any upload, pull or recreate step fails.
        """
        result = ApplyResult()
        order = descriptor.deploy_order()
        try:
            await self.run(f"mkdir -p {shlex.quote(self._project_dir)}")
            await self.upload(render_descriptor(descriptor), self.compose_path)

            if registry_credentials is not None:
                await self._registry_login(registry_credentials)

            await self.run(self._compose("pull", "--quiet"))
            result.pulled = descriptor.images()
            logger.info("Pulled %d images", len(result.pulled))

            for name in order:
                wanted = await self.image_id(descriptor.services[name].image)
                current = await self.instance(name)
                if current.running and current.image_id == wanted:
                    logger.info("Service %s unchanged (%s)", name, _short(wanted))
                    result.unchanged.append(name)
                    continue

                logger.info(
                    "Recreating %s: %s -> %s",
                    name, _short(current.image_id), _short(wanted),
                )
                await self.run(self._compose("up", "-d", "--no-deps", "--force-recreate", name))
                result.recreated.append(name)
        except DeployFailure as exc:
            raise DeployFailure(
                f"Apply failed after recreating {result.recreated or 'nothing'}: {exc}",
                updated_services=list(result.recreated),
            ) from exc

        return result

    async def instance(self, service: str) -> RuntimeInstance:
        """Describe the running container of ``service``, if any."""
        container_id = await self.run(self._compose("ps", "-q", service))
        container_id = container_id.splitlines()[0].strip() if container_id else ""
        if not container_id:
            return RuntimeInstance(service=service)

        inspected = await self.run(
            "docker inspect --format '{{.Image}} {{.State.Running}}' "
            + shlex.quote(container_id)
        )
        image_id, _, running = inspected.partition(" ")
        return RuntimeInstance(
            service=service,
            container_id=container_id,
            image_id=image_id or None,
            running=running.strip() == "true",
        )

    async def image_id(self, image: str) -> str:
        """Local image id of ``image`` on the host."""
        return await self.run(
            "docker image inspect --format '{{.Id}}' " + shlex.quote(image)
        )

    async def _registry_login(self, credentials: RegistryCredentials) -> None:
        command = f"docker login --username {shlex.quote(credentials.username)} --password-stdin"
        if credentials.registry:
            command += f" {shlex.quote(credentials.registry)}"
        await self.run(command, stdin=credentials.password.get_secret_value())


def _short(image_id: str | None) -> str:
    if not image_id:
        return "none"
    return image_id.removeprefix("sha256:")[:12]
