"""
Bounded retry for hub calls.

Only timeouts are retried: a timed-out reply says nothing about whether
the remote side finished, but every other failure is either permanent
or already handled by the session manager.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from mcphub_bridge.errors import RemoteTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 3
BACKOFF_STEP = 0.25  # seconds
BACKOFF_MAX_STEPS = 8

TIMEOUT_MARKERS = (
    "Request timed out",
    "Timed out while waiting",
    "MCP error -32001",
)


def is_timeout_error(error: BaseException) -> bool:
    """True for protocol timeouts, detected by type or by message."""
    if isinstance(error, RemoteTimeoutError):
        return True
    message = str(error)
    return any(marker in message for marker in TIMEOUT_MARKERS)


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after failed attempt ``attempt`` (0-based): 0.25, 0.5, ... capped at 2.0."""
    return BACKOFF_STEP * min(attempt + 1, BACKOFF_MAX_STEPS)


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    max_retries: int,
    *,
    is_retryable: Callable[[BaseException], bool] = is_timeout_error,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run ``operation``, retrying retryable failures up to ``max_retries`` times.

    Args:
        operation: Zero-argument coroutine function, called once per attempt.
        max_retries: Extra attempts after the first (0..3).
        is_retryable: Decides whether a failure is worth another attempt.
        sleep: Awaitable delay, injectable for tests.

    Returns:
        The first successful result.

    Raises:
        The first non-retryable error, or the last error once retries run out.
    """
    if not 0 <= max_retries <= MAX_RETRIES:
        raise ValueError(f"max_retries must be between 0 and {MAX_RETRIES}, got {max_retries}")

    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_retries or not is_retryable(e):
                raise
            delay = backoff_delay(attempt)
            logger.debug(
                f"Attempt {attempt + 1}/{max_retries + 1} timed out ({e}); retrying in {delay:.2f}s"
            )
            await sleep(delay)
            attempt += 1
