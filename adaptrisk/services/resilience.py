"""
Resilience Patterns — Retry with Backoff.

Applied to external calls (the live signal feed).
"""

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 16.0,
    jitter: float = 0.5,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    operation_name: str = "operation",
) -> T:
    """
    Retry an async function with exponential backoff and jitter.

    Strategy: base_delay * 2^attempt + random(0, jitter)
    """
    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except retry_on as exc:
            if attempt == max_retries:
                logger.error(
                    "retry_exhausted",
                    operation=operation_name,
                    attempts=attempt + 1,
                    error=str(exc),
                )
                raise
            delay = min(base_delay * (2 ** attempt), max_delay)
            delay += random.uniform(0, jitter)
            logger.warning(
                "retry_attempt",
                operation=operation_name,
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=round(delay, 2),
                error=str(exc),
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")
