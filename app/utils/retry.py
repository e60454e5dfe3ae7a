"""
Retry helpers with exponential backoff for upstream API calls.

Only transient failures are retried: network errors and HTTP 429/5xx.
Auth errors, GraphQL error payloads and 4xx responses fail on the first try.
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import httpx

from app.services.errors import UpstreamAPIError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES: Tuple[int, ...] = (429, 500, 502, 503, 504)
RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """
    Delay before the next attempt.

    Args:
        attempt: Attempt that just failed (1-indexed)
        base_delay: Initial delay in seconds
        max_delay: Cap applied before jitter
        exponential_base: Growth factor per attempt
        jitter: Add 0-25% random extra delay

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)
    if jitter:
        delay += delay * random.uniform(0, 0.25)
    return delay


def is_retryable_error(error: Exception) -> bool:
    if isinstance(error, RETRYABLE_EXCEPTIONS):
        return True
    if isinstance(error, UpstreamAPIError):
        return error.status_code in RETRYABLE_STATUS_CODES
    return False


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    **kwargs,
) -> T:
    """Await ``func(*args, **kwargs)``, retrying transient failures up to ``max_attempts`` times."""
    for attempt in range(1, max_attempts + 1):
        try:
            result = await func(*args, **kwargs)
            if attempt > 1:
                logger.info(f"{func.__name__} succeeded on attempt {attempt}")
            return result
        except Exception as e:
            if attempt >= max_attempts or not is_retryable_error(e):
                raise
            delay = calculate_backoff(attempt, base_delay=base_delay, max_delay=max_delay)
            logger.warning(
                f"{func.__name__} failed (attempt {attempt}/{max_attempts}): {e}. "
                f"Retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)
    raise ValueError("max_attempts must be at least 1")
