"""
Bounded exponential-backoff retry for remote operations.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int,
    base_delay: float,
    label: str = "operation",
    *,
    is_retryable: Callable[[Exception], bool] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` up to ``max_retries + 1`` times.

    The delay before retry n (n >= 1) is ``base_delay * 2 ** (n - 1)``.
    When attempts are exhausted, or ``is_retryable`` rejects an error, the
    last exception is re-raised unchanged.

    Args:
        operation: Zero-argument coroutine factory
        max_retries: Retries after the first attempt
        base_delay: Delay in seconds before the first retry
        label: Name used in log entries
        is_retryable: Optional predicate; errors it rejects are raised immediately
        sleep: Awaitable sleep, injectable for tests

    Returns:
        Whatever the first successful attempt returns
    """
    total_attempts = max_retries + 1

    for attempt in range(1, total_attempts + 1):
        try:
            if attempt > 1:
                logger.info("Retrying operation", operation=label, attempt=attempt, max_attempts=total_attempts)
            return await operation()
        except Exception as e:
            retryable = is_retryable(e) if is_retryable else True
            logger.warning(
                "Operation failed",
                operation=label,
                attempt=attempt,
                max_attempts=total_attempts,
                retryable=retryable,
                error=str(e),
                error_type=type(e).__name__,
            )

            if not retryable or attempt >= total_attempts:
                raise

            backoff = base_delay * (2 ** (attempt - 1))
            logger.debug("Waiting before retry", operation=label, backoff_seconds=backoff)
            await sleep(backoff)

    raise RuntimeError(f"Retry loop for {label} exhausted")  # max_retries < 0
