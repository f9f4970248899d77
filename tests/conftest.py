# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides in-memory fakes for the three external systems a run touches:
the image builder, the artifact registry and the target host. The fake
registry and host share state the way the real ones do: the host pulls
whatever the registry currently serves under a tag.
No external dependencies: no Docker daemon, no SSH server.
"""

from __future__ import annotations

import asyncio
import shlex
from pathlib import Path
from typing import Any

import pytest

from shipline.build.base_builder import BaseImageBuilder
from shipline.compose.descriptor import default_descriptor, parse_descriptor
from shipline.compose.models import CompositionDescriptor
from shipline.config.settings import Settings
from shipline.core.errors import (
    AuthFailure,
    BuildFailure,
    ConnectTimeout,
    DeployFailure,
    PublishFailure,
)
from shipline.core.models import (
    Artifact,
    BuildTarget,
    HostCredentials,
    RegistryCredentials,
)
from shipline.pipeline.runner import PipelineRunner
from shipline.registry.base_registry import BaseRegistryClient
from shipline.remote.base_executor import BaseRemoteExecutor
from shipline.storage.run_manager import RunLedger

BACKEND_REPO = "registry.local/tutorial-backend"
FRONTEND_REPO = "registry.local/tutorial-frontend"


# === FAKES ===


class FakeBuilder(BaseImageBuilder):
    """Builds nothing; image ids derive from the per-service source revision.

    Unchanged source yields the same image id, like a fully cached build.
    """

    def __init__(self) -> None:
        self.sources: dict[str, str] = {"backend": "r1", "frontend": "r1"}
        self.fail: set[str] = set()
        self.calls: list[str] = []

    @property
    def backend_name(self) -> str:
        return "fake"

    async def build(
        self,
        service: str,
        context: Path,
        repository: str,
        tags: list[str],
        recipe: str = "Dockerfile",
    ) -> Artifact:
        self.calls.append(service)
        if service in self.fail:
            raise BuildFailure(service, "npm ERR! missing dependency 'express'")
        return Artifact(
            service=service,
            repository=repository,
            tags=list(tags),
            context=context,
            image_id=f"sha256:{service}-{self.sources[service]}",
        )


class FakeRegistry(BaseRegistryClient):
    """Tag pointers held in memory: ``repo:tag`` -> (digest, image id)."""

    def __init__(self) -> None:
        self.pointers: dict[str, tuple[str, str]] = {}
        self.fail: set[str] = set()
        self.reject_login = False
        self.logins: list[str] = []
        self.published: list[str] = []

    @property
    def backend_name(self) -> str:
        return "fake"

    async def login(self, credentials: RegistryCredentials) -> None:
        if self.reject_login:
            raise AuthFailure(f"Registry rejected credentials for '{credentials.username}'")
        self.logins.append(credentials.username)

    async def publish(self, artifact: Artifact, tags: list[str]) -> str:
        if artifact.service in self.fail:
            raise PublishFailure(artifact.reference(), "connection reset by peer")
        digest = "sha256:digest-" + artifact.image_id.removeprefix("sha256:")
        for tag in tags:
            reference = f"{artifact.repository}:{tag}"
            self.pointers[reference] = (digest, artifact.image_id)
            self.published.append(reference)
        return digest

    async def resolve(self, name: str, tag: str) -> str:
        reference = f"{name}:{tag}"
        if reference not in self.pointers:
            raise PublishFailure(reference, "tag not found in registry")
        return self.pointers[reference][0]


class FakeExecutor(BaseRemoteExecutor):
    """Simulated host driven through the real ``apply`` command sequence.

    ``containers`` maps service -> (container id, image id, running).
    ``images`` maps image reference -> local image id.
    """

    def __init__(self, registry: FakeRegistry | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.registry = registry
        self.images: dict[str, str] = {}
        self.containers: dict[str, tuple[str, str, bool]] = {}
        self.files: dict[str, str] = {}
        self.commands: list[str] = []
        self.stdin: list[str] = []
        self.connect_error: Exception | None = None
        self.fail_recreate: set[str] = set()
        self.apply_delay_s = 0.0
        self.connected_to: str | None = None
        self.connects = 0
        self.closes = 0
        self.recreates = 0

    @property
    def backend_name(self) -> str:
        return "fake"

    async def connect(self, host: str, credentials: HostCredentials) -> None:
        self.connects += 1
        if self.connect_error is not None:
            raise self.connect_error
        self.connected_to = host

    async def close(self) -> None:
        self.closes += 1
        self.connected_to = None

    async def upload(self, content: str, remote_path: str) -> None:
        self.files[remote_path] = content

    async def run(self, command: str, stdin: str | None = None) -> str:
        if self.connected_to is None:
            raise DeployFailure("Not connected")
        self.commands.append(command)
        if stdin is not None:
            self.stdin.append(stdin)
        argv = shlex.split(command)

        if argv[0] == "mkdir" or argv[:2] == ["docker", "login"]:
            return ""
        if "pull" in argv:
            if self.apply_delay_s:
                await asyncio.sleep(self.apply_delay_s)
            self._pull()
            return ""
        if argv[:3] == ["docker", "image", "inspect"]:
            image = argv[-1]
            if image not in self.images:
                raise DeployFailure(f"No such image: {image}")
            return self.images[image]
        if "ps" in argv:
            container = self.containers.get(argv[-1])
            return container[0] if container else ""
        if argv[:2] == ["docker", "inspect"]:
            for container_id, image_id, running in self.containers.values():
                if container_id == argv[-1]:
                    return f"{image_id} {'true' if running else 'false'}"
            raise DeployFailure(f"No such container: {argv[-1]}")
        if "up" in argv:
            self._recreate(argv[-1])
            return ""
        raise AssertionError(f"unexpected command: {command}")

    @property
    def descriptor(self) -> CompositionDescriptor:
        return parse_descriptor(self.files[self.compose_path])

    def _pull(self) -> None:
        for image in self.descriptor.images():
            if self.registry is not None and image in self.registry.pointers:
                self.images[image] = self.registry.pointers[image][1]
            else:
                self.images.setdefault(image, f"sha256:{image}")

    def _recreate(self, service: str) -> None:
        if service in self.fail_recreate:
            raise DeployFailure(f"Container {service} exited with code 1")
        self.recreates += 1
        image = self.descriptor.services[service].image
        self.containers[service] = (f"c-{service}-{self.recreates}", self.images[image], True)

    def image_of(self, service: str) -> str | None:
        container = self.containers.get(service)
        return container[1] if container else None


# === FIXTURES: fakes and settings ===


@pytest.fixture
def fake_builder() -> FakeBuilder:
    return FakeBuilder()


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def fake_executor(fake_registry: FakeRegistry) -> FakeExecutor:
    return FakeExecutor(registry=fake_registry)


@pytest.fixture
def sample_descriptor() -> CompositionDescriptor:
    """Document store + backend + frontend pointing at the 'latest' tags."""
    return default_descriptor(
        backend_image=f"{BACKEND_REPO}:latest",
        frontend_image=f"{FRONTEND_REPO}:latest",
    )


@pytest.fixture
def build_targets(tmp_path: Path) -> list[BuildTarget]:
    return [
        BuildTarget(service="backend", context=tmp_path / "backend", repository=BACKEND_REPO),
        BuildTarget(service="frontend", context=tmp_path / "frontend", repository=FRONTEND_REPO),
    ]


@pytest.fixture
def host_credentials() -> HostCredentials:
    return HostCredentials(username="deploy", key_path=Path("/home/ci/.ssh/id_ed25519"))


@pytest.fixture
def ledger(tmp_path: Path) -> RunLedger:
    return RunLedger(tmp_path / "runs")


@pytest.fixture
def make_runner(
    fake_builder: FakeBuilder,
    fake_registry: FakeRegistry,
    fake_executor: FakeExecutor,
    sample_descriptor: CompositionDescriptor,
    build_targets: list[BuildTarget],
    host_credentials: HostCredentials,
    ledger: RunLedger,
):
    """Factory for a PipelineRunner wired to the fakes; kwargs override."""

    def _make(**overrides: Any) -> PipelineRunner:
        kwargs: dict[str, Any] = {
            "builder": fake_builder,
            "registry": fake_registry,
            "executor": fake_executor,
            "descriptor": sample_descriptor,
            "targets": build_targets,
            "tags": ["latest", "v1"],
            "host": "203.0.113.10",
            "host_credentials": host_credentials,
            "ledger": ledger,
        }
        kwargs.update(overrides)
        return PipelineRunner(**kwargs)

    return _make


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from any .env file, with deploy fields filled."""
    return Settings(
        _env_file=None,
        ssh_host="203.0.113.10",
        ssh_key_path=tmp_path / "id_ed25519",
        registry_url="registry.local",
        backend_context=tmp_path / "backend",
        frontend_context=tmp_path / "frontend",
        compose_file=tmp_path / "docker-compose.yml",
        output_dir=tmp_path / "runs",
        run_lock_file=tmp_path / "run.lock",
    )


@pytest.fixture
def connect_timeout() -> ConnectTimeout:
    return ConnectTimeout("Host 203.0.113.10:22 unreachable within 10s: timed out")
