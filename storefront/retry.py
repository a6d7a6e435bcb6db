# storefront/retry.py
"""
Bounded retry with exponential backoff, shared by every upstream call.

Attempt ``i`` (zero-indexed) that fails is followed by a sleep of
``min(1000 * 2**i, 8000)`` ms when another attempt remains.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from .errors import GenerationExhaustedError, GenerationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

BASE_DELAY_MS = 1000
MAX_DELAY_MS = 8000

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int) -> float:
    """Delay in seconds after the zero-indexed ``attempt`` failed."""
    return min(BASE_DELAY_MS * 2 ** attempt, MAX_DELAY_MS) / 1000


async def with_timeout(awaitable: Awaitable[T], seconds: float) -> T:
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        raise GenerationTimeoutError(seconds) from e


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    *,
    label: str = "operation",
    sleep: Sleep = asyncio.sleep,
) -> T:
    attempts = max_retries + 1
    last_error: BaseException | None = None

    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as e:
            last_error = e
            logger.warning(
                "[Retry] %s attempt %d/%d failed: %s", label, attempt + 1, attempts, e
            )
            if attempt + 1 < attempts:
                await sleep(backoff_delay(attempt))

    raise GenerationExhaustedError(last_error, attempts)
