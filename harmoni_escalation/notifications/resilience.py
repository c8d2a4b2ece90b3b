"""
Retry with exponential backoff for outbound channel calls.

Only TransportError is retried by default; anything else is a bug in the
sender and propagates immediately.
"""

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

import structlog

from harmoni_escalation.exceptions import TransportError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    jitter: float = 0.25,
    retry_on: tuple = (TransportError,),
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Call ``fn`` up to ``max_retries + 1`` times.

    Delay before retry n: min(base_delay * 2^n, max_delay) + random(0, jitter)
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
            await sleep(delay)

    raise AssertionError("unreachable")
