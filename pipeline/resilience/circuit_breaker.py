"""Circuit breaker for the AI model chain.

Each model gets its own breaker so a model that keeps failing is skipped
without waiting for its timeout, while the rest of the chain stays usable.

States:
- CLOSED: calls go through; consecutive failures are counted
- OPEN: calls are rejected at once until `timeout_seconds` have passed
- HALF_OPEN: trial calls; `success_threshold` successes close the circuit,
  one failure opens it again

Example:
    >>> breaker = CircuitBreaker("LLM:gemma", CircuitBreakerConfig(failure_threshold=5))
    >>> text = await breaker.call_async(client.complete, model, messages)
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pipeline.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """
    Attributes:
        failure_threshold: Consecutive failures that open the circuit
        timeout_seconds: Time the circuit stays open before a trial call
        success_threshold: Trial successes needed to close the circuit
    """

    failure_threshold: int = 5
    timeout_seconds: float = 60
    success_threshold: int = 2


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config
        self.clock = clock
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: Optional[float] = None

    @property
    def retry_after(self) -> float:
        """Seconds until an open circuit lets a trial call through."""
        if self.state != CircuitState.OPEN or self.opened_at is None:
            return 0.0
        remaining = self.config.timeout_seconds - (self.clock() - self.opened_at)
        return max(0.0, round(remaining, 1))

    async def call_async(
        self, func: Callable[..., Awaitable[T]], *args, **kwargs
    ) -> T:
        """Await func unless the circuit is open.

        Raises:
            ExternalServiceError: circuit_open (503) while the circuit is open
            Exception: Whatever func raises, counted as a failure
        """
        self._admit()
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def _admit(self) -> None:
        if self.state != CircuitState.OPEN:
            return
        if self.retry_after > 0:
            raise ExternalServiceError(
                service_name=self.name,
                error_type="circuit_open",
                details={
                    "message": "Circuit breaker is OPEN. Service unavailable.",
                    "retry_after": self.retry_after,
                },
            )
        self.state = CircuitState.HALF_OPEN
        self.success_count = 0
        logger.info(
            f"Circuit breaker '{self.name}' entering HALF_OPEN state",
            extra={"service": self.name},
        )

    def _record_success(self) -> None:
        if self.state == CircuitState.CLOSED:
            self.failure_count = 0
            return
        self.success_count += 1
        if self.success_count >= self.config.success_threshold:
            self.reset()

    def _record_failure(self) -> None:
        self.failure_count += 1
        if self.state == CircuitState.HALF_OPEN:
            self._open("re-OPENED after a failed trial call")
        elif self.failure_count >= self.config.failure_threshold:
            self._open(f"OPENED after {self.failure_count} failures")

    def _open(self, reason: str) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = self.clock()
        logger.warning(
            f"Circuit breaker '{self.name}' {reason}", extra={"service": self.name}
        )

    def reset(self) -> None:
        """Close the circuit and clear all counters."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at = None
        logger.info(f"Circuit breaker '{self.name}' CLOSED", extra={"service": self.name})

    def snapshot(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failureCount": self.failure_count,
            "retryAfterSeconds": self.retry_after,
        }
