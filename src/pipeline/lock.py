# src/pipeline/lock.py — v1
"""Run-level lock: at most one Pipeline Run at a time.

Two layers: an ``asyncio.Lock`` for overlapping triggers inside one
process, and an optional lock file created with O_CREAT | O_EXCL for
triggers from separate processes. A second trigger is rejected with
RunInProgress rather than queued.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from shipline.core.errors import RunInProgress

logger = logging.getLogger(__name__)


class RunLock:
    """Single-slot lock held for the whole duration of one run."""

    def __init__(self, lock_file: Path | None = None) -> None:
        self._lock = asyncio.Lock()
        self._lock_file = Path(lock_file).expanduser() if lock_file else None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self, run_id: str) -> AsyncIterator[None]:
        """Hold the lock for ``run_id``.

        Raises:
            RunInProgress: If another run holds the lock.
        """
        if self._lock.locked():
            raise RunInProgress("Another pipeline run is in progress in this process")
        async with self._lock:
            self._acquire_file(run_id)
            try:
                yield
            finally:
                self._release_file()

    def _acquire_file(self, run_id: str) -> None:
        if self._lock_file is None:
            return
        self._lock_file.parent.mkdir(parents=True, exist_ok=True)
        for attempt in range(2):
            try:
                fd = os.open(self._lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                holder = self._read_holder()
                if attempt == 0 and holder is not None and not _pid_alive(holder[1]):
                    logger.warning(
                        "Removing stale run lock of run %s (pid %d)", holder[0], holder[1]
                    )
                    self._lock_file.unlink(missing_ok=True)
                    continue
                raise RunInProgress(
                    f"Run lock {self._lock_file} is held"
                    + (f" by run {holder[0]} (pid {holder[1]})" if holder else "")
                ) from None
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(f"{run_id} {os.getpid()}\n")
            return

    def _release_file(self) -> None:
        if self._lock_file is not None:
            self._lock_file.unlink(missing_ok=True)

    def _read_holder(self) -> tuple[str, int] | None:
        try:
            run_id, pid = self._lock_file.read_text(encoding="utf-8").split()  # type: ignore[union-attr]
            return run_id, int(pid)
        except (OSError, ValueError):
            return None


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True
