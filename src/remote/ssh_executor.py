# src/remote/ssh_executor.py — v1
"""SSH remote executor using paramiko.

paramiko is blocking; every call is pushed to a worker thread. The
connect wait is bounded by ``connect_timeout_s`` (TCP, banner and auth).
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any

import paramiko

from shipline.core.errors import AuthFailure, ConnectTimeout, DeployFailure
from shipline.core.models import HostCredentials
from shipline.logging.logger import mask_secrets, register_secret
from shipline.remote.base_executor import BaseRemoteExecutor

logger = logging.getLogger(__name__)


class SSHExecutor(BaseRemoteExecutor):
    """Run commands on the target host over SSH."""

    def __init__(
        self,
        connect_timeout_s: float = 10.0,
        command_timeout_s: float | None = None,
        strict_host_keys: bool = False,
        client_factory: Any = paramiko.SSHClient,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._connect_timeout_s = connect_timeout_s
        self._command_timeout_s = command_timeout_s
        self._strict_host_keys = strict_host_keys
        self._client_factory = client_factory
        self._client: paramiko.SSHClient | None = None
        self._host: str | None = None

    @property
    def backend_name(self) -> str:
        return "ssh"

    @property
    def connected(self) -> bool:
        if self._client is None:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    async def connect(self, host: str, credentials: HostCredentials) -> None:
        if credentials.password is not None:
            register_secret(credentials.password.get_secret_value())
        self._client = await asyncio.to_thread(self._connect_sync, host, credentials)
        self._host = host
        logger.info("Connected to %s@%s:%d", credentials.username, host, credentials.port)

    def _connect_sync(self, host: str, credentials: HostCredentials) -> paramiko.SSHClient:
        client = self._client_factory()
        client.load_system_host_keys()
        if self._strict_host_keys:
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        timeout = self._connect_timeout_s
        try:
            client.connect(
                hostname=host,
                port=credentials.port,
                username=credentials.username,
                key_filename=str(credentials.key_path) if credentials.key_path else None,
                password=(
                    credentials.password.get_secret_value()
                    if credentials.password is not None
                    else None
                ),
                timeout=timeout,
                banner_timeout=timeout,
                auth_timeout=timeout,
                look_for_keys=False,
                allow_agent=False,
            )
        except (paramiko.AuthenticationException, paramiko.BadHostKeyException) as exc:
            client.close()
            raise AuthFailure(f"Host {host} rejected credentials: {exc}") from exc
        except (socket.timeout, TimeoutError, paramiko.SSHException, OSError) as exc:
            client.close()
            raise ConnectTimeout(
                f"Host {host}:{credentials.port} unreachable within {timeout:.0f}s: {exc}"
            ) from exc
        return client

    async def run(self, command: str, stdin: str | None = None) -> str:
        if not self.connected:
            raise DeployFailure(f"Not connected to {self._host or 'any host'}")
        return await asyncio.to_thread(self._run_sync, command, stdin)

    def _run_sync(self, command: str, stdin: str | None) -> str:
        display = mask_secrets(command)
        logger.debug("[%s] Running: %s", self._host, display)
        try:
            channel_in, channel_out, channel_err = self._client.exec_command(  # type: ignore[union-attr]
                command, timeout=self._command_timeout_s
            )
            if stdin is not None:
                channel_in.write(stdin)
                channel_in.channel.shutdown_write()
            exit_code = channel_out.channel.recv_exit_status()
            out = channel_out.read().decode("utf-8", errors="replace").strip()
            err = channel_err.read().decode("utf-8", errors="replace").strip()
        except (paramiko.SSHException, socket.timeout, OSError) as exc:
            raise DeployFailure(f"Command lost on {self._host}: {display}: {exc}") from exc

        if exit_code != 0:
            raise DeployFailure(
                f"Command failed on {self._host} (exit {exit_code}): {display}: "
                f"{mask_secrets(err)}"
            )
        return out

    async def upload(self, content: str, remote_path: str) -> None:
        if not self.connected:
            raise DeployFailure(f"Not connected to {self._host or 'any host'}")
        await asyncio.to_thread(self._upload_sync, content, remote_path)
        logger.info("Uploaded %s (%d bytes)", remote_path, len(content))

    def _upload_sync(self, content: str, remote_path: str) -> None:
        try:
            sftp = self._client.open_sftp()  # type: ignore[union-attr]
            try:
                with sftp.file(remote_path, "w") as handle:
                    handle.write(content)
            finally:
                sftp.close()
        except (paramiko.SSHException, OSError) as exc:
            raise DeployFailure(f"Upload of {remote_path} failed: {exc}") from exc

    async def close(self) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
            self._client = None
