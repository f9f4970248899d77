# src/pipeline/runner.py — v2
"""Pipeline runner — build, publish and deploy one Pipeline Run.

Stage groups execute strictly in order:

  1. Building    every service image, concurrently
  2. Publishing  every artifact under every tag, concurrently
  3. Deploying   connect to the host and apply the descriptor

A failing build does not cancel its siblings: all builds of the group
finish, then the group fails as a whole and nothing is published. The
same holds for publishing. No stage is retried by the runner (the only
optional retry is the bounded publish retry in ``registry.retry``), and
a failed run is never resumed.

The whole run happens under the run lock, so overlapping triggers cannot
race on the registry tags or on the host.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from shipline.build.base_builder import BaseImageBuilder
from shipline.compose.models import CompositionDescriptor
from shipline.core.errors import (
    DeployFailure,
    DescriptorError,
    PublishFailure,
    ShiplineError,
)
from shipline.core.models import (
    Artifact,
    BuildTarget,
    HostCredentials,
    PipelineRun,
    RegistryCredentials,
    Trigger,
)
from shipline.logging.context import (
    clear_stage_context,
    set_run_context,
    set_stage_context,
)
from shipline.logging.handlers import StageLogCollector
from shipline.logging.logger import SecretMaskFilter
from shipline.pipeline.lock import RunLock
from shipline.pipeline.state import RunStateMachine
from shipline.registry.base_registry import BaseRegistryClient
from shipline.registry.retry import NO_RETRY, RetryConfig, with_retry
from shipline.remote.base_executor import BaseRemoteExecutor
from shipline.storage.run_manager import RunLedger

logger = logging.getLogger(__name__)

_ROOT_LOGGER = "shipline"


class PipelineRunner:
    """Execute Pipeline Runs against injected builder, registry and executor.

    Args:
        builder: Image builder.
        registry: Artifact registry client.
        executor: Remote executor for the target host.
        descriptor: Composition descriptor; each target's service entry is
            repointed at the freshly published artifact before apply.
        targets: One BuildTarget per service, in stage order.
        tags: Tags every artifact is published under (first one is deployed).
        host: Target host address.
        host_credentials: SSH credentials for the host.
        registry_credentials: Registry login, or None for anonymous push.
        retry: Publish retry policy (default: no retries).
        apply_timeout_s: Upper bound for the apply step (None = unbounded).
        lock: Run lock shared by every run of this runner.
        ledger: Optional run ledger; the manifest is saved on every transition.
        stage_log_lines: Log lines kept per stage on the run manifest.
    """

    def __init__(
        self,
        builder: BaseImageBuilder,
        registry: BaseRegistryClient,
        executor: BaseRemoteExecutor,
        descriptor: CompositionDescriptor,
        targets: list[BuildTarget],
        tags: list[str],
        host: str,
        host_credentials: HostCredentials,
        registry_credentials: RegistryCredentials | None = None,
        retry: RetryConfig = NO_RETRY,
        apply_timeout_s: float | None = None,
        lock: RunLock | None = None,
        ledger: RunLedger | None = None,
        stage_log_lines: int = 200,
    ) -> None:
        if not targets:
            raise ValueError("at least one build target is required")
        if not tags:
            raise ValueError("at least one tag is required")
        missing = [t.service for t in targets if t.service not in descriptor.services]
        if missing:
            raise DescriptorError(f"Descriptor has no service entry for {missing}")

        self._builder = builder
        self._registry = registry
        self._executor = executor
        self._descriptor = descriptor
        self._targets = list(targets)
        self._tags = list(tags)
        self._host = host
        self._host_credentials = host_credentials
        self._registry_credentials = registry_credentials
        self._retry = retry
        self._apply_timeout_s = apply_timeout_s
        self._lock = lock or RunLock()
        self._ledger = ledger
        self._stage_log_lines = stage_log_lines

    @property
    def services(self) -> list[str]:
        return [t.service for t in self._targets]

    async def run(self, trigger: Trigger | None = None) -> PipelineRun:
        """Execute one Pipeline Run from ``building`` to a terminal state.

        Stage failures never raise: they end the run in ``failed`` and are
        recorded on the returned run.

        Raises:
            RunInProgress: If another run holds the run lock.
        """
        run = PipelineRun.for_services(self.services, trigger=trigger or Trigger())
        machine = RunStateMachine(run)
        set_run_context(run.run_id)

        async with self._lock.hold(run.run_id):
            collector = self._attach_collector()
            start = time.monotonic()
            try:
                await self._execute(machine)
            finally:
                logging.getLogger(_ROOT_LOGGER).removeHandler(collector)
                for stage in run.stages:
                    stage.log = collector.lines_for(stage.name)
                await self._persist(run)

            logger.info(
                "Run %s %s in %.1fs (failed stages: %s)",
                run.run_id,
                run.state,
                time.monotonic() - start,
                run.failed_stages or "none",
            )
        return run

    async def _execute(self, machine: RunStateMachine) -> None:
        run = machine.run

        machine.advance("building")
        await self._persist(run)
        artifacts = await self._build_all(machine)
        if artifacts is None:
            machine.fail()
            return

        machine.advance("publishing")
        await self._persist(run)
        if not await self._publish_all(machine, artifacts):
            machine.fail()
            return

        machine.advance("deploying")
        await self._persist(run)
        if not await self._deploy(machine, artifacts):
            machine.fail()
            return

        machine.advance("succeeded")

    # ------------------------------------------------------------------
    # Stage groups
    # ------------------------------------------------------------------

    async def _build_all(self, machine: RunStateMachine) -> dict[str, Artifact] | None:
        """Build every target concurrently; None if any build failed."""
        results = await asyncio.gather(
            *(
                self._stage(
                    machine,
                    f"build-{target.service}",
                    target.service,
                    self._build_one,
                    target,
                )
                for target in self._targets
            )
        )
        artifacts = {artifact.service: artifact for ok, artifact in results if ok}
        machine.run.artifacts = dict(artifacts)
        if len(artifacts) != len(self._targets):
            return None
        return artifacts

    async def _build_one(self, target: BuildTarget) -> Artifact:
        logger.info("Building %s from %s", target.repository, target.context)
        return await self._builder.build(
            service=target.service,
            context=target.context,
            repository=target.repository,
            tags=self._tags,
            recipe=target.recipe,
        )

    async def _publish_all(
        self,
        machine: RunStateMachine,
        artifacts: dict[str, Artifact],
    ) -> bool:
        results = await asyncio.gather(
            *(
                self._stage(
                    machine,
                    f"publish-{service}",
                    service,
                    self._publish_one,
                    artifact,
                )
                for service, artifact in artifacts.items()
            )
        )
        for ok, published in results:
            if ok:
                machine.run.artifacts[published.service] = published
        return all(ok for ok, _ in results)

    async def _publish_one(self, artifact: Artifact) -> Artifact:
        if self._registry_credentials is not None:
            await self._registry.login(self._registry_credentials)
        digest = await with_retry(
            self._registry.publish,
            artifact,
            self._tags,
            operation=f"publish {artifact.repository}",
            config=self._retry,
        )
        if digest:
            await self._verify_tags(artifact, digest)
        logger.info("Published %s under %s", artifact.repository, ", ".join(self._tags))
        return artifact.model_copy(update={"digest": digest or None})

    async def _verify_tags(self, artifact: Artifact, digest: str) -> None:
        """Every tag must now resolve to the digest just pushed."""
        for tag in self._tags:
            served = await self._registry.resolve(artifact.repository, tag)
            if served != digest:
                raise PublishFailure(
                    artifact.reference(tag),
                    f"registry serves {served}, expected {digest}",
                )

    async def _deploy(
        self,
        machine: RunStateMachine,
        artifacts: dict[str, Artifact],
    ) -> bool:
        descriptor = self._descriptor
        for service, artifact in artifacts.items():
            descriptor = descriptor.with_image(service, artifact.reference(self._tags[0]))

        ok, result = await self._stage(machine, "deploy", None, self._apply, descriptor)
        if ok:
            machine.run.changed_services = list(result.recreated)
        elif isinstance(result, DeployFailure):
            # No rollback: these services already run the new artifacts.
            machine.run.changed_services = list(result.updated_services)
        return ok

    async def _apply(self, descriptor: CompositionDescriptor) -> Any:
        await self._executor.connect(self._host, self._host_credentials)
        try:
            apply = self._executor.apply(descriptor, self._registry_credentials)
            if self._apply_timeout_s is None:
                result = await apply
            else:
                try:
                    result = await asyncio.wait_for(apply, timeout=self._apply_timeout_s)
                except asyncio.TimeoutError as exc:
                    raise DeployFailure(
                        f"Apply exceeded {self._apply_timeout_s:.0f}s on {self._host}"
                    ) from exc
        finally:
            await self._executor.close()

        logger.info(
            "Applied descriptor: recreated=%s unchanged=%s",
            result.recreated or "none",
            result.unchanged or "none",
        )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _stage(
        self,
        machine: RunStateMachine,
        name: str,
        service: str | None,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> tuple[bool, Any]:
        """Run one stage and record its outcome.

        Returns ``(True, value)`` on success and ``(False, exc)`` on failure.

        Runs inside its own task when gathered, so the stage context set
        here does not leak into sibling stages.
        """
        set_stage_context(name, service)
        machine.start_stage(name)
        try:
            value = await fn(*args)
        except Exception as exc:
            machine.fail_stage(name, exc)
            logger.error(
                "Stage %s failed (%s): %s",
                name, type(exc).__name__, exc,
                exc_info=not isinstance(exc, ShiplineError),
            )
            return False, exc
        else:
            machine.finish_stage(name)
            return True, value
        finally:
            clear_stage_context()

    def _attach_collector(self) -> StageLogCollector:
        collector = StageLogCollector(max_lines=self._stage_log_lines)
        collector.addFilter(SecretMaskFilter())
        root = logging.getLogger(_ROOT_LOGGER)
        root.addHandler(collector)
        if root.level == logging.NOTSET:
            root.setLevel(logging.INFO)
        return collector

    async def _persist(self, run: PipelineRun) -> None:
        if self._ledger is not None:
            await self._ledger.save(run)
