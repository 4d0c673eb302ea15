"""
Bounded exponential-backoff retry for transient fetch failures
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

MAX_JITTER = 0.25  # seconds


def is_retryable(error: BaseException) -> bool:
    """No status, 429 and 5xx are transient; any other status is final"""
    status = getattr(error, 'status', None)
    if not status:
        return True
    return status == 429 or status >= 500


def backoff_delay(base_delay: float, attempt: int) -> float:
    return base_delay * (2 ** attempt) + random.uniform(0, MAX_JITTER)


async def with_retries(
    task: Callable[[int], Awaitable[Any]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> Any:
    """Run task(attempt) until it succeeds, fails permanently, or retries run out.

    The last underlying error is re-raised so callers can inspect its status.
    """
    sleep = sleep or asyncio.sleep
    attempt = 0

    while True:
        try:
            return await task(attempt)
        except Exception as e:
            if attempt >= max_retries or not is_retryable(e):
                raise

            delay = backoff_delay(base_delay, attempt)
            logger.warning(f"Attempt {attempt + 1} failed ({e}); retrying after {delay:.2f}s")
            await sleep(delay)
            attempt += 1
