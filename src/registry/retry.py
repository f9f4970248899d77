# src/registry/retry.py — v1
"""Bounded retry with exponential backoff for transient publish errors.

Only PublishFailure is retried. AuthFailure and everything else
propagate on the first attempt. The default policy makes no retries.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from shipline.core.errors import PublishFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration for publish calls."""

    max_retries: int = 0
    base_delay_s: float = 2.0
    backoff_factor: float = 2.0
    jitter: bool = True


NO_RETRY = RetryConfig()


def _compute_delay(config: RetryConfig, attempt: int) -> float:
    """Compute delay for a given attempt (0-based)."""
    delay = config.base_delay_s * (config.backoff_factor ** attempt)
    if config.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    return delay


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    operation: str = "publish",
    config: RetryConfig = NO_RETRY,
    **kwargs: Any,
) -> Any:
    """Execute an async function, retrying PublishFailure per ``config``.

    Raises:
        PublishFailure: The last failure once retries are exhausted.
    """
    attempts = 0
    while True:
        try:
            return await fn(*args, **kwargs)
        except PublishFailure as exc:
            attempts += 1
            if attempts > config.max_retries:
                raise
            delay = _compute_delay(config, attempts - 1)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                operation, attempts, config.max_retries + 1, delay, exc,
            )
            await asyncio.sleep(delay)
