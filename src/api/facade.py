# src/api/facade.py — v2
"""Public API facade — single entry point for pipeline runs.

Usage:
    from shipline.api.facade import run_pipeline
    run = await run_pipeline(Trigger(kind="push", branch="main"))

Every collaborator can be injected; anything left out is created from
Settings through the backend factories.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from shipline.compose.descriptor import default_descriptor, load_descriptor
from shipline.config.settings import Settings
from shipline.core.models import BuildTarget, PipelineRun, Trigger
from shipline.logging.logger import register_secret
from shipline.pipeline.lock import RunLock
from shipline.pipeline.runner import PipelineRunner
from shipline.registry.retry import RetryConfig
from shipline.storage.run_manager import RunLedger

if TYPE_CHECKING:
    from shipline.build.base_builder import BaseImageBuilder
    from shipline.compose.models import CompositionDescriptor
    from shipline.registry.base_registry import BaseRegistryClient
    from shipline.remote.base_executor import BaseRemoteExecutor

logger = logging.getLogger(__name__)


async def run_pipeline(
    trigger: Trigger,
    settings: Settings | None = None,
    builder: BaseImageBuilder | None = None,
    registry: BaseRegistryClient | None = None,
    executor: BaseRemoteExecutor | None = None,
    descriptor: CompositionDescriptor | None = None,
    ledger: RunLedger | None = None,
    lock: RunLock | None = None,
) -> PipelineRun | None:
    """Run the pipeline for ``trigger``.

    Returns:
        The finished PipelineRun, or None when the trigger is a push to
        a branch other than the designated one.

    Raises:
        ConfigurationError: If deploy settings are missing.
        RunInProgress: If another run holds the run lock.
    """
    settings = settings or Settings()
    if not trigger.matches_branch(settings.trigger_branch):
        logger.info(
            "Ignoring push to %s (pipeline runs on %s)",
            trigger.branch, settings.trigger_branch,
        )
        return None

    settings.validate_for_deploy()
    runner = build_runner(
        settings,
        builder=builder,
        registry=registry,
        executor=executor,
        descriptor=descriptor,
        ledger=ledger,
        lock=lock,
    )
    return await runner.run(trigger)


def build_runner(
    settings: Settings,
    builder: BaseImageBuilder | None = None,
    registry: BaseRegistryClient | None = None,
    executor: BaseRemoteExecutor | None = None,
    descriptor: CompositionDescriptor | None = None,
    ledger: RunLedger | None = None,
    lock: RunLock | None = None,
) -> PipelineRunner:
    """Wire a PipelineRunner from settings and optional overrides."""
    if builder is None:
        from shipline.build.builder_factory import create_builder

        builder = create_builder(settings)
    if registry is None:
        from shipline.registry.registry_factory import create_registry

        registry = create_registry(settings)
    if executor is None:
        from shipline.remote.executor_factory import create_executor

        executor = create_executor(settings)

    registry_credentials = settings.registry_credentials()
    host_credentials = settings.host_credentials()
    if registry_credentials is not None:
        register_secret(registry_credentials.password.get_secret_value())
    if host_credentials.password is not None:
        register_secret(host_credentials.password.get_secret_value())

    return PipelineRunner(
        builder=builder,
        registry=registry,
        executor=executor,
        descriptor=descriptor or resolve_descriptor(settings),
        targets=build_targets(settings),
        tags=settings.image_tags_list,
        host=settings.ssh_host,
        host_credentials=host_credentials,
        registry_credentials=registry_credentials,
        retry=RetryConfig(
            max_retries=settings.publish_max_retries,
            base_delay_s=settings.publish_retry_delay_s,
        ),
        apply_timeout_s=settings.apply_timeout_s,
        lock=lock or RunLock(settings.run_lock_file),
        ledger=ledger or RunLedger(settings.output_dir),
        stage_log_lines=settings.stage_log_lines,
    )


def build_targets(settings: Settings) -> list[BuildTarget]:
    """Backend and frontend build targets, in stage order."""
    return [
        BuildTarget(
            service="backend",
            context=settings.backend_context,
            repository=settings.repository_for(settings.backend_image),
            recipe=settings.backend_recipe,
        ),
        BuildTarget(
            service="frontend",
            context=settings.frontend_context,
            repository=settings.repository_for(settings.frontend_image),
            recipe=settings.frontend_recipe,
        ),
    ]


def resolve_descriptor(settings: Settings) -> CompositionDescriptor:
    """Load the configured descriptor, or fall back to the built-in one."""
    if settings.compose_file.is_file():
        return load_descriptor(settings.compose_file)
    logger.info("No descriptor at %s, using the built-in one", settings.compose_file)
    tag = settings.image_tags_list[0]
    return default_descriptor(
        backend_image=f"{settings.repository_for(settings.backend_image)}:{tag}",
        frontend_image=f"{settings.repository_for(settings.frontend_image)}:{tag}",
    )
