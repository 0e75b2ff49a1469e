"""Ordered fallback chains.

A chain is a list of named attempts with a uniform ``attempt() -> result``
signature. ``first_success`` runs them in declared order and returns the
first result that does not raise.

Example:
    >>> attempts = [Attempt(m, partial(client.complete, m, messages)) for m in models]
    >>> outcome = await first_success(attempts, timeout_seconds=30)
    >>> outcome.label, outcome.value
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Attempt(Generic[T]):
    """One strategy in a fallback chain."""

    label: str
    run: Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class AttemptOutcome(Generic[T]):
    """Result of the first successful attempt."""

    label: str
    value: T
    failures: dict[str, str] = field(default_factory=dict)


class FallbackExhausted(Exception):
    """Raised when every attempt in the chain failed."""

    def __init__(self, failures: dict[str, str]):
        super().__init__(f"All {len(failures)} fallback attempts failed")
        self.failures = failures


async def first_success(
    attempts: Sequence[Attempt[T]],
    *,
    timeout_seconds: Optional[float] = None,
    accept: Optional[Callable[[T], bool]] = None,
) -> AttemptOutcome[T]:
    """Try each attempt in order until one succeeds.

    Args:
        attempts: Strategies in priority order
        timeout_seconds: Upper bound for each single attempt; a timeout counts
            as a failure of that attempt
        accept: Optional predicate; a result it rejects counts as a failure

    Returns:
        Label and value of the first successful attempt

    Raises:
        FallbackExhausted: If no attempt succeeded (or the chain is empty)
    """
    failures: dict[str, str] = {}

    for attempt in attempts:
        try:
            if timeout_seconds is not None:
                value = await asyncio.wait_for(attempt.run(), timeout=timeout_seconds)
            else:
                value = await attempt.run()
        except asyncio.TimeoutError:
            failures[attempt.label] = f"timed out after {timeout_seconds}s"
            logger.warning(
                f"Fallback attempt '{attempt.label}' timed out",
                extra={"model": attempt.label},
            )
            continue
        except Exception as e:
            failures[attempt.label] = f"{type(e).__name__}: {e}"
            logger.warning(
                f"Fallback attempt '{attempt.label}' failed: {e}",
                extra={"model": attempt.label},
            )
            continue

        if accept is not None and not accept(value):
            failures[attempt.label] = "result not accepted"
            logger.warning(
                f"Fallback attempt '{attempt.label}' returned an unusable result",
                extra={"model": attempt.label},
            )
            continue

        return AttemptOutcome(label=attempt.label, value=value, failures=failures)

    raise FallbackExhausted(failures)
