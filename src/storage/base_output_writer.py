# src/storage/base_output_writer.py — v2
"""Abstract output writer interface for the run ledger."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseOutputWriter(ABC):
    """Unified interface for ledger storage backends."""

    @abstractmethod
    async def write(self, path: str, content: bytes | str) -> None:
        """Write content to the given path, replacing it."""

    @abstractmethod
    async def read(self, path: str) -> bytes:
        """Read content from the given path."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check if path exists."""

    @abstractmethod
    async def create_symlink(self, target: str, link: str) -> None:
        """Create or replace a symbolic link."""

    @abstractmethod
    async def list_dir(self, path: str) -> list[str]:
        """List directory entry names, sorted."""
