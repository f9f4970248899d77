# src/logging/handlers.py — v2
"""Log handlers: size-rotated log files and per-stage log capture."""

from __future__ import annotations

import logging
import re
from collections import defaultdict, deque
from logging.handlers import RotatingFileHandler
from pathlib import Path

from shipline.logging.context import get_context

_SIZE_UNITS = {"KB": 1024, "MB": 1024**2, "GB": 1024**3}


def _parse_size(size_str: str) -> int:
    """Parse size string like '10MB' into bytes.

    Supported suffixes: KB, MB, GB (case-insensitive).
    """
    match = re.match(r"^(\d+)\s*(KB|MB|GB)$", size_str.strip(), re.IGNORECASE)
    if not match:
        raise ValueError(f"Invalid size format: {size_str!r}. Use e.g. '10MB'.")
    return int(match.group(1)) * _SIZE_UNITS[match.group(2).upper()]


def create_rotating_handler(
    log_file: str,
    rotation: str = "10MB",
    retention: int = 30,
) -> RotatingFileHandler:
    """Create a rotating file handler, creating parent directories.

    Args:
        log_file: Path to log file (``~`` is expanded).
        rotation: Max file size before rotation (e.g. "10MB").
        retention: Number of backup files to keep.
    """
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        filename=str(path),
        maxBytes=_parse_size(rotation),
        backupCount=retention,
        encoding="utf-8",
    )


class StageLogCollector(logging.Handler):
    """Keep the last ``max_lines`` messages of each stage in memory.

    Records are bucketed by the ``stage`` context variable; records
    emitted outside a stage are dropped. The runner copies each bucket
    onto its StageResult so the run manifest carries per-stage logs.
    """

    def __init__(self, max_lines: int = 200, level: int = logging.INFO) -> None:
        super().__init__(level=level)
        self._max_lines = max_lines
        self._lines: dict[str, deque[str]] = defaultdict(
            lambda: deque(maxlen=self._max_lines)
        )
        self.setFormatter(logging.Formatter("%(levelname)s %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        stage = get_context().stage
        if stage is None:
            return
        try:
            self._lines[stage].append(self.format(record))
        except Exception:
            self.handleError(record)

    def lines_for(self, stage: str) -> list[str]:
        """Return collected lines for ``stage`` (oldest first)."""
        return list(self._lines.get(stage, ()))
