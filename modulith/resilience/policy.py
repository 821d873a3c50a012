"""ResilientCallPolicy: timeout, retry and circuit breaking around one call.

The policy wraps a zero-argument coroutine factory.  Every attempt runs
under a per-attempt deadline; the outcome of the whole logical call is
returned as a ``CallOutcome`` and never raised.  Only
``asyncio.CancelledError`` crosses the policy boundary.

Exceptions raised by the operation are classified:

* ``NotFoundError``     → ``Success(None)``; no retry, no breaker sample.
* ``TransientError``, ``TimeoutError``, ``ConnectionError``
                        → retried with backoff; each attempt is a breaker sample.
* ``NonRetryableError`` → ``Failure(NON_RETRYABLE)`` at once; sampled unless
                          the error says otherwise.
* anything else         → treated as non-retryable.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

from modulith.core.errors import NonRetryableError, NotFoundError, TransientError
from modulith.resilience.circuit_breaker import CircuitBreaker, CircuitOpenError
from modulith.resilience.retry import RetryPlan

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_ERRORS = (TransientError, asyncio.TimeoutError, TimeoutError, ConnectionError)


class FailureKind(str, Enum):
    """Why a logical call produced no value."""

    TRANSIENT_EXHAUSTED = "transient_exhausted"
    NON_RETRYABLE = "non_retryable"
    CIRCUIT_OPEN = "circuit_open"


@dataclass(frozen=True)
class Success(Generic[T]):
    """The call produced *value* on attempt number *attempt* (1-based).

    ``value`` is ``None`` when the dependency answered not-found.
    """

    value: T
    attempt: int

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """The call failed after *attempts* attempts (0 when rejected by the breaker)."""

    kind: FailureKind
    attempts: int
    last_error: str

    @property
    def ok(self) -> bool:
        return False


CallOutcome = Union[Success[T], Failure]


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class ResilientCallPolicy:
    """Retry + timeout + circuit breaker for one external dependency.

    Args:
        name:       Dependency name used in log lines.
        timeout:    Per-attempt deadline in seconds (``None`` disables it).
        retry_plan: Attempt budget and backoff; defaults to ``RetryPlan()``.
        breaker:    The dependency's own ``CircuitBreaker``.
        sleep:      Awaitable sleep used for backoff, injectable for tests.
        rng:        Random source for jitter.
    """

    def __init__(
        self,
        name: str,
        *,
        timeout: float | None = 30.0,
        retry_plan: RetryPlan | None = None,
        breaker: CircuitBreaker | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.name = name
        self.timeout = timeout
        self.retry_plan = retry_plan or RetryPlan()
        self.breaker = breaker or CircuitBreaker(name)
        self._sleep = sleep
        self._rng = rng

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> CallOutcome[T]:
        """Run *operation* under the policy and return its classified outcome."""
        try:
            trial = await self.breaker.pre_check()
        except CircuitOpenError as exc:
            logger.warning("Call to %s rejected: %s", self.name, exc)
            return Failure(FailureKind.CIRCUIT_OPEN, 0, str(exc))

        if trial:
            logger.info("Circuit '%s' half-open, sending trial call", self.name)
        try:
            return await self._run_attempts(operation, trial)
        except asyncio.CancelledError:
            if trial:
                self.breaker.release_trial()
            raise

    async def _run_attempts(self, operation: Callable[[], Awaitable[T]], trial: bool) -> CallOutcome[T]:
        attempts = self.retry_plan.max_attempts
        last_error = ""

        for attempt in range(attempts):
            try:
                value = await asyncio.wait_for(operation(), timeout=self.timeout)
            except NotFoundError as exc:
                logger.info("%s: %s", self.name, exc)
                await self.breaker.on_success(record=False, trial=trial)
                return Success(None, attempt + 1)
            except NonRetryableError as exc:
                return await self._non_retryable(exc, attempt + 1, trial, record=exc.record_failure)
            except _TRANSIENT_ERRORS as exc:
                last_error = _describe(exc)
                await self.breaker.on_failure(trial=trial)
                if trial:
                    logger.warning("Trial call to %s failed: %s", self.name, last_error)
                    return Failure(FailureKind.TRANSIENT_EXHAUSTED, attempt + 1, last_error)
                if attempt < attempts - 1:
                    delay = self.retry_plan.delay_for(attempt, self._rng)
                    logger.warning(
                        "Attempt %d/%d to %s failed: %s, retrying in %.2fs",
                        attempt + 1,
                        attempts,
                        self.name,
                        last_error,
                        delay,
                    )
                    await self._sleep(delay)
            except Exception as exc:
                return await self._non_retryable(exc, attempt + 1, trial, record=True)
            else:
                await self.breaker.on_success(trial=trial)
                if attempt:
                    # Earlier attempts of this call left failures in the window.
                    await self.breaker.evaluate()
                return Success(value, attempt + 1)

        await self.breaker.evaluate()
        logger.error("Call to %s failed after %d attempts: %s", self.name, attempts, last_error)
        return Failure(FailureKind.TRANSIENT_EXHAUSTED, attempts, last_error)

    async def _non_retryable(self, exc: Exception, attempts: int, trial: bool, *, record: bool) -> Failure:
        last_error = _describe(exc)
        if record:
            await self.breaker.on_failure(trial=trial)
            await self.breaker.evaluate()
        else:
            # The dependency answered; its health is not in question.
            await self.breaker.on_success(record=False, trial=trial)
        logger.error("Non-retryable failure from %s: %s", self.name, last_error)
        return Failure(FailureKind.NON_RETRYABLE, attempts, last_error)
