"""
Bounded retry with linear backoff for navigation and extraction.

Policy denials never reach this wrapper: the orchestrator checks robots.txt
before the first attempt.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from loguru import logger


T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0


@dataclass
class RetryPolicy:
    """Attempt budget and backoff base (seconds)."""
    attempts: int = DEFAULT_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY

    @classmethod
    def from_crawler_config(cls, config) -> "RetryPolicy":
        return cls(attempts=config.retry_attempts, base_delay=config.retry_delay_ms / 1000)


def compute_backoff_delay(attempt_index: int, base_delay: float) -> float:
    """
    Delay after the failed attempt at attempt_index (0-based).

    Linear: base, 2 * base, 3 * base, ...
    """
    return base_delay * (attempt_index + 1)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    attempts: int = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    *,
    deadline: float | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> T:
    """
    Run fn until it succeeds or the attempt budget is spent.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt
        attempts: Maximum number of calls to fn
        base_delay: Seconds; the delay before retry i is base_delay * i
        deadline: Absolute clock() value after which no new attempt starts
        sleep: Awaitable sleep (injected in tests)
        clock: Monotonic clock used with deadline
        retry_on: Exception types that trigger another attempt

    Returns:
        The first successful result

    Raises:
        The exception raised by the last attempt
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    last_error: BaseException | None = None

    for i in range(attempts):
        try:
            return await fn()
        except retry_on as e:
            last_error = e
            logger.warning(f"Attempt {i + 1}/{attempts} failed: {e}")

        if i == attempts - 1:
            break

        delay = compute_backoff_delay(i, base_delay)
        if deadline is not None and clock() + delay >= deadline:
            logger.warning("Deadline reached, abandoning remaining attempts")
            break
        await sleep(delay)

    raise last_error
