"""Failure handling for calls that leave the process.

- Circuit breaker: one per AI model, skips a model that keeps failing
- Retry: exponential backoff for whole batch-job attempts
- Fallback chain: ordered alternatives tried until one succeeds
"""

from pipeline.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from pipeline.resilience.fallback import (
    Attempt,
    AttemptOutcome,
    FallbackExhausted,
    first_success,
)
from pipeline.resilience.retry import (
    RetryConfig,
    async_retry_with_backoff,
    compute_backoff_delay,
)

__all__ = [
    "Attempt",
    "AttemptOutcome",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "FallbackExhausted",
    "RetryConfig",
    "async_retry_with_backoff",
    "compute_backoff_delay",
    "first_success",
]
