"""Retry logic utilities for reasoning service calls.

This module provides an awaitable retry helper with exponential backoff. Waiting uses ``asyncio.sleep`` so a call that is backing off never
blocks other in-flight calls on the same event loop.

Only errors the caller classifies as transient are retried; everything else
is raised on the first failure.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3  # total attempts, including the first
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 60.0  # seconds
DEFAULT_BACKOFF_FACTOR = 2.0


def is_retriable_status(status_code: Optional[int]) -> bool:
    """Rate limits and server errors are retriable; other statuses are not."""
    if status_code is None:
        return False
    return status_code == 429 or 500 <= status_code < 600


def exponential_backoff(
    attempt: int,
    base_delay: float,
    max_delay: float,
    backoff_factor: float,
    jitter: float = 0.0,
) -> float:
    """Calculate exponential backoff with optional jitter.

    Args:
        attempt: Current retry attempt (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        backoff_factor: Backoff multiplier
        jitter: Fraction of the delay to randomize by (0.25 = +/-25%)

    Returns:
        Delay in seconds
    """
    # Calculate exponential delay: base_delay * (backoff_factor ^ attempt)
    delay = min(base_delay * (backoff_factor**attempt), max_delay)

    if jitter:
        delay += delay * jitter * (2 * random.random() - 1)
    return max(0.0, delay)


def _default_should_retry(exception: Exception) -> bool:
    return bool(getattr(exception, "transient", False))


async def retry_async(
    func: Callable[..., Awaitable[Any]],
    *args,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    jitter: float = 0.0,
    should_retry: Optional[Callable[[Exception], bool]] = None,
    description: Optional[str] = None,
    **kwargs,
) -> Any:
    """Await ``func(*args, **kwargs)``, retrying transient failures.

    Args:
        func: Coroutine function to call
        max_attempts: Total attempts including the first one
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay
        backoff_factor: Multiplier applied per attempt
        jitter: Optional randomization fraction
        should_retry: Classifier for exceptions; defaults to the exception's
            ``transient`` attribute
        description: Name used in log lines (defaults to the function name)

    Example:
        text = await retry_async(client.call_once, system, user, max_attempts=3)
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    classify = should_retry or _default_should_retry
    name = description or getattr(func, "__name__", "call")

    for attempt in range(max_attempts):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not classify(e):
                logger.error(f"{name} failed with non-retriable error: {e}")
                raise

            if attempt >= max_attempts - 1:
                logger.error(f"{name} failed after {attempt + 1} attempts: {e}")
                raise

            delay = exponential_backoff(
                attempt, base_delay, max_delay, backoff_factor, jitter
            )
            logger.warning(
                f"{name} failed (attempt {attempt + 1}/{max_attempts}): {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            await asyncio.sleep(delay)

