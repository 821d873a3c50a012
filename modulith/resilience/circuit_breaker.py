"""Async circuit breaker driven by a rolling failure ratio.

Implements the standard three-state circuit breaker:

    CLOSED    →  (failure ratio ≥ threshold over the window)  →  OPEN
    OPEN      →  (break duration elapsed)                     →  HALF_OPEN
    HALF_OPEN →  (trial succeeds)                             →  CLOSED
    HALF_OPEN →  (trial fails)                                →  OPEN

The CLOSED → OPEN decision needs both a failure ratio at or above
``failure_ratio`` and at least ``minimum_throughput`` samples inside the
trailing ``sampling_duration``.  Each external dependency owns its own
``CircuitBreaker``; state is never shared across dependencies.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        backend_name: Friendly name of the failing backend.
        retry_after: Seconds until the circuit admits a trial call.
    """

    def __init__(self, backend_name: str, retry_after: float) -> None:
        self.backend_name = backend_name
        self.retry_after = max(0.0, retry_after)
        super().__init__(f"Circuit open for '{backend_name}', retry after {self.retry_after:.1f}s")


@dataclass(frozen=True)
class BreakerConfig:
    """Immutable circuit breaker parameters.

    Attributes:
        failure_ratio:      Failure share (0..1) that opens the circuit.
        minimum_throughput: Samples required in the window before opening.
        sampling_duration:  Seconds of history the failure ratio covers.
        break_duration:     Seconds the circuit stays OPEN before a trial.
    """

    failure_ratio: float = 0.5
    minimum_throughput: int = 5
    sampling_duration: float = 10.0
    break_duration: float = 30.0

    def __post_init__(self) -> None:
        if not 0.0 < self.failure_ratio <= 1.0:
            raise ValueError("failure_ratio must be in (0, 1]")
        if self.minimum_throughput < 1:
            raise ValueError("minimum_throughput must be at least 1")


class FailureWindow:
    """Time-ordered record of recent outcomes.

    Samples older than ``sampling_duration`` are pruned lazily whenever the
    window is read.  ``max_samples`` bounds memory under heavy traffic.
    """

    def __init__(self, sampling_duration: float, max_samples: int = 1000) -> None:
        self.sampling_duration = sampling_duration
        self._samples: deque[tuple[float, bool]] = deque(maxlen=max_samples)

    def record(self, failed: bool, now: float) -> None:
        self._samples.append((now, failed))

    def prune(self, now: float) -> None:
        cutoff = now - self.sampling_duration
        while self._samples and self._samples[0][0] <= cutoff:
            self._samples.popleft()

    def counts(self, now: float) -> tuple[int, int]:
        """Return ``(total, failures)`` inside the window at *now*."""
        self.prune(now)
        failures = sum(1 for _, failed in self._samples if failed)
        return len(self._samples), failures

    def failure_ratio(self, now: float) -> float:
        total, failures = self.counts(now)
        return failures / total if total else 0.0

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)


class CircuitBreaker:
    """Async-safe circuit breaker for a single dependency.

    All reads and writes of the state and the failure window happen under
    one ``asyncio.Lock``; the lock is never held while the guarded call runs.

    Args:
        name:   Human-readable dependency name (for logging/errors).
        config: Thresholds and durations; defaults to ``BreakerConfig()``.
        clock:  Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        name: str,
        config: BreakerConfig | None = None,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self.config = config or BreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._window = FailureWindow(self.config.sampling_duration)
        self._opened_at: float = 0.0
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

        # Metrics
        self.total_calls = 0
        self.total_failures = 0
        self.total_rejections = 0
        self.total_successes = 0

    # ── Public properties ────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        """Return the current state, reporting OPEN → HALF_OPEN once the break elapsed."""
        if self._state == CircuitState.OPEN and self._break_elapsed():
            return CircuitState.HALF_OPEN
        return self._state

    @property
    def window(self) -> FailureWindow:
        return self._window

    def _break_elapsed(self) -> bool:
        return self._clock() - self._opened_at >= self.config.break_duration

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        logger.warning(
            "Circuit '%s' transition %s -> %s",
            self.name,
            self._state.value,
            new_state.value,
        )
        self._state = new_state
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        if new_state != CircuitState.HALF_OPEN:
            self._window.clear()
            self._trial_in_flight = False

    # ── Call gating ──────────────────────────────────────────────────

    async def pre_check(self) -> bool:
        """Check whether a call is allowed; raise if the circuit is open.

        Must be called **before** the guarded operation.  Returns ``True``
        when the admitted call is the single HALF_OPEN trial.
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if not self._break_elapsed():
                    retry_after = self.config.break_duration - (self._clock() - self._opened_at)
                    self.total_rejections += 1
                    raise CircuitOpenError(self.name, retry_after)
                self._transition(CircuitState.HALF_OPEN)

            if self._state == CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    self.total_rejections += 1
                    raise CircuitOpenError(self.name, 0.0)
                self._trial_in_flight = True
                self.total_calls += 1
                return True

            self.total_calls += 1
            return False

    def release_trial(self) -> None:
        """Give up a HALF_OPEN trial slot without recording an outcome.

        Used when the trial call is cancelled before it could finish.
        """
        self._trial_in_flight = False

    # ── Outcome recording ────────────────────────────────────────────

    async def on_success(self, *, record: bool = True, trial: bool = False) -> None:
        """Record a successful call; the HALF_OPEN trial closes the circuit.

        ``record=False`` closes a probing circuit without adding a window
        sample, for authoritative answers such as not-found.  Calls admitted
        before the circuit went HALF_OPEN (``trial=False``) never decide the
        probe.
        """
        async with self._lock:
            self.total_successes += 1
            if record:
                self._window.record(False, self._clock())
            if trial and self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.CLOSED)

    async def on_failure(self, *, trial: bool = False) -> None:
        """Record a failed call; a failed HALF_OPEN trial reopens immediately."""
        async with self._lock:
            self.total_failures += 1
            self._window.record(True, self._clock())
            if trial and self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)

    async def evaluate(self) -> CircuitState:
        """Open a CLOSED circuit when the rolling failure ratio trips it."""
        async with self._lock:
            if self._state == CircuitState.CLOSED:
                total, failures = self._window.counts(self._clock())
                if total >= self.config.minimum_throughput and failures / total >= self.config.failure_ratio:
                    logger.warning(
                        "Circuit '%s' tripped: %d/%d failures within %.1fs",
                        self.name,
                        failures,
                        total,
                        self.config.sampling_duration,
                    )
                    self._transition(CircuitState.OPEN)
            return self._state

    async def reset(self) -> None:
        """Force-reset the circuit breaker to CLOSED state."""
        async with self._lock:
            self._transition(CircuitState.CLOSED)
            self._window.clear()
            self._trial_in_flight = False

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot for health/metrics."""
        total, failures = self._window.counts(self._clock())
        return {
            "name": self.name,
            "state": self.state.value,
            "samples": total,
            "failure_ratio": round(failures / total, 3) if total else 0.0,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "total_successes": self.total_successes,
        }
