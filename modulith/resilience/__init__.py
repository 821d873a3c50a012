"""Resilience patterns: retry, circuit breaker and timeout for outbound calls.

Every external dependency gets its own ``ResilientCallPolicy`` wrapping its
own ``CircuitBreaker``, so one failing backend never trips another's breaker.
"""

from modulith.resilience.circuit_breaker import (
    BreakerConfig,
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    FailureWindow,
)
from modulith.resilience.policy import (
    CallOutcome,
    Failure,
    FailureKind,
    ResilientCallPolicy,
    Success,
)
from modulith.resilience.retry import RetryPlan

__all__ = [
    "BreakerConfig",
    "CallOutcome",
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "Failure",
    "FailureKind",
    "FailureWindow",
    "ResilientCallPolicy",
    "RetryPlan",
    "Success",
]
