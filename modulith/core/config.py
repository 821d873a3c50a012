"""Settings: centralized configuration for the API and the worker.

All settings are loaded from environment variables with the ``MODULITH_``
prefix.  Each outbound dependency (user service, weather feed) carries its
own retry and circuit breaker parameters so one failing backend never
shares breaker state with another.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings

from modulith.resilience.circuit_breaker import BreakerConfig
from modulith.resilience.retry import RetryPlan


class Settings(BaseSettings):
    """Modulith configuration.

    All fields can be overridden by environment variables prefixed with
    ``MODULITH_``.  For example, ``MODULITH_WORKER_INTERVAL_SECONDS=5``
    shortens the polling interval.
    """

    # ── Service identity ────────────────────────────────────────────
    SERVICE_NAME: str = "modulith"
    SERVICE_VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # ── User service (peer, critical) ───────────────────────────────
    USER_API_URL: str = "http://localhost:8000"
    USER_API_TIMEOUT: float = 30.0
    USER_API_MAX_ATTEMPTS: int = 4  # Initial attempt + 3 retries
    USER_API_RETRY_BASE_DELAY: float = 1.0
    USER_API_RETRY_MAX_DELAY: float = 30.0
    USER_API_RETRY_JITTER: bool = True
    USER_API_FAILURE_RATIO: float = 0.5
    USER_API_MINIMUM_THROUGHPUT: int = 5
    USER_API_SAMPLING_SECONDS: float = 10.0
    USER_API_BREAK_SECONDS: float = 30.0

    # ── Weather feed (non-critical, falls back to synthetic data) ───
    WEATHER_API_URL: str = "http://localhost:8090"
    WEATHER_API_TIMEOUT: float = 30.0
    WEATHER_API_MAX_ATTEMPTS: int = 4
    WEATHER_API_RETRY_BASE_DELAY: float = 1.0
    WEATHER_API_RETRY_MAX_DELAY: float = 10.0
    WEATHER_API_RETRY_JITTER: bool = True
    WEATHER_API_FAILURE_RATIO: float = 0.6
    WEATHER_API_MINIMUM_THROUGHPUT: int = 3
    WEATHER_API_SAMPLING_SECONDS: float = 10.0
    WEATHER_API_BREAK_SECONDS: float = 20.0

    # ── Worker ──────────────────────────────────────────────────────
    WORKER_INTERVAL_SECONDS: float = 30.0
    WORKER_CITIES: list[str] = ["New York", "London", "Tokyo"]
    WORKER_PROCESS_DELAY: float = 0.1  # Simulated per-user processing time

    # ── Orders module ───────────────────────────────────────────────
    ORDER_WEATHER_CITY: str = "New York"

    model_config = {
        "env_prefix": "MODULITH_",
    }


def user_api_retry_plan(settings: Settings) -> RetryPlan:
    """Build the ``RetryPlan`` for the user service client."""
    return RetryPlan(
        max_attempts=settings.USER_API_MAX_ATTEMPTS,
        base_delay=settings.USER_API_RETRY_BASE_DELAY,
        max_delay=settings.USER_API_RETRY_MAX_DELAY,
        jitter=settings.USER_API_RETRY_JITTER,
    )


def user_api_breaker_config(settings: Settings) -> BreakerConfig:
    return BreakerConfig(
        failure_ratio=settings.USER_API_FAILURE_RATIO,
        minimum_throughput=settings.USER_API_MINIMUM_THROUGHPUT,
        sampling_duration=settings.USER_API_SAMPLING_SECONDS,
        break_duration=settings.USER_API_BREAK_SECONDS,
    )


def weather_api_retry_plan(settings: Settings) -> RetryPlan:
    """Build the ``RetryPlan`` for the weather feed client."""
    return RetryPlan(
        max_attempts=settings.WEATHER_API_MAX_ATTEMPTS,
        base_delay=settings.WEATHER_API_RETRY_BASE_DELAY,
        max_delay=settings.WEATHER_API_RETRY_MAX_DELAY,
        jitter=settings.WEATHER_API_RETRY_JITTER,
    )


def weather_api_breaker_config(settings: Settings) -> BreakerConfig:
    return BreakerConfig(
        failure_ratio=settings.WEATHER_API_FAILURE_RATIO,
        minimum_throughput=settings.WEATHER_API_MINIMUM_THROUGHPUT,
        sampling_duration=settings.WEATHER_API_SAMPLING_SECONDS,
        break_duration=settings.WEATHER_API_BREAK_SECONDS,
    )
