# src/remote/executor_factory.py — v1
"""Factory: instantiate the remote executor from configuration."""

from __future__ import annotations

from shipline.config.settings import Settings
from shipline.remote.base_executor import BaseRemoteExecutor


def create_executor(settings: Settings) -> BaseRemoteExecutor:
    """Create the remote executor for the configured backend.

    Raises:
        ValueError: If the backend is not supported.
    """
    if settings.executor_backend == "ssh":
        from shipline.remote.ssh_executor import SSHExecutor

        return SSHExecutor(
            connect_timeout_s=settings.ssh_connect_timeout_s,
            command_timeout_s=settings.apply_timeout_s,
            strict_host_keys=settings.ssh_strict_host_keys,
            project_dir=settings.remote_project_dir,
            compose_file=settings.remote_compose_file,
            compose_command=settings.compose_command,
            project_name=settings.app_name,
        )

    raise ValueError(f"Unsupported executor backend: {settings.executor_backend!r}")
