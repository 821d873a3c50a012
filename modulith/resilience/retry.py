"""Retry plans: exponential backoff with optional jitter."""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPlan:
    """Immutable retry configuration consumed once per logical call.

    Attributes:
        max_attempts:   Total attempts including the first one.
        base_delay:     Seconds to wait before the first retry.
        max_delay:      Upper bound for any single wait.
        backoff_factor: Multiplier applied per attempt.
        jitter:         Randomize each wait by ``±jitter_ratio``.
        jitter_ratio:   Fraction of the computed delay used as jitter spread.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: bool = False
    jitter_ratio: float = 0.25

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        """Return the wait before retry number ``attempt + 1`` (0-based *attempt*)."""
        delay = min(self.base_delay * (self.backoff_factor**attempt), self.max_delay)
        if self.jitter and delay > 0:
            spread = delay * self.jitter_ratio
            delay += (rng or random).uniform(-spread, spread)
            delay = min(max(delay, 0.0), self.max_delay)
        return delay

    def delays(self, rng: random.Random | None = None) -> list[float]:
        """Return the concrete waits between attempts (``max_attempts - 1`` of them)."""
        return [self.delay_for(attempt, rng) for attempt in range(self.max_attempts - 1)]
