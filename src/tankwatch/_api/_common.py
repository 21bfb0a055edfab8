"""Shared helpers for telemetry endpoint modules.

It is internal to tankwatch and may change at any time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tankwatch.exceptions import TankwatchTransportError

_logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def is_retryable(exc: TankwatchTransportError) -> bool:
    """Network failures, timeouts and 5xx responses are worth retrying."""
    return exc.status_code is None or exc.status_code >= 500


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay before retry number ``attempt`` (0-based): base, 2x base, 4x base, ..."""
    return base_delay * (2**attempt)


async def with_retries(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    base_delay: float,
    sleep: Sleep = asyncio.sleep,
    description: str = "request",
) -> T:
    """Run ``fn`` up to ``max_attempts`` times with exponential backoff.

    Only retryable :class:`TankwatchTransportError`\\ s are retried; anything
    else, and the last failure, propagates unchanged.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except TankwatchTransportError as exc:
            attempt += 1
            if attempt >= max_attempts or not is_retryable(exc):
                _logger.debug("%s failed after %d attempt(s): %s", description, attempt, exc)
                raise
            delay = backoff_delay(attempt - 1, base_delay)
            _logger.debug(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                description,
                attempt,
                max_attempts,
                delay,
                exc,
            )
            await sleep(delay)
