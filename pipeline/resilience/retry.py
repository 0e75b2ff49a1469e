"""Exponential backoff for whole-job retries.

Example:
    >>> config = RetryConfig(max_attempts=3, initial_delay_seconds=2.0, jitter=False)
    >>> job = await async_retry_with_backoff(
    ...     queue._run_attempt, config, (JobExecutionError,), job_id
    ... )
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Attributes:
        max_attempts: Attempts including the first one
        initial_delay_seconds: Wait after the first failure
        max_delay_seconds: Upper bound for any single wait
        exponential_base: Growth factor per failed attempt
        jitter: Scale each wait by a random factor in [0.5, 1.5)
    """

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True


def compute_backoff_delay(config: RetryConfig, attempt: int) -> float:
    """Delay to wait after the given zero-based failed attempt."""
    delay = min(
        config.initial_delay_seconds * (config.exponential_base**attempt),
        config.max_delay_seconds,
    )
    if config.jitter:
        delay *= 0.5 + random.random()
    return delay


async def async_retry_with_backoff(
    func: Callable[..., Awaitable[Any]],
    config: RetryConfig,
    retryable_exceptions: Tuple[Type[Exception], ...],
    *args,
    before_retry: Optional[Callable[[int, Exception], Awaitable[None]]] = None,
    **kwargs,
) -> Any:
    """Await func until it succeeds or config.max_attempts is reached.

    Args:
        before_retry: Awaited after the backoff sleep with the number of the
            attempt about to start and the previous exception; may raise to stop
            retrying

    Raises:
        The last retryable exception once attempts are exhausted; any other
        exception immediately
    """
    if config.max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 0
    while True:
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            attempt += 1
            if attempt >= config.max_attempts:
                logger.error(
                    f"Giving up after {attempt} attempt(s): {e}",
                    extra={"attempt": attempt, "exception_type": type(e).__name__},
                )
                raise

            delay = compute_backoff_delay(config, attempt - 1)
            logger.warning(
                f"Attempt {attempt}/{config.max_attempts} failed: "
                f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s",
                extra={
                    "attempt": attempt,
                    "delay_seconds": delay,
                    "exception_type": type(e).__name__,
                },
            )
            await asyncio.sleep(delay)
            if before_retry is not None:
                await before_retry(attempt + 1, e)
