"""WeatherClient: resilient client for the weather feed.

Weather is non-critical: when the feed is down (retries exhausted or the
circuit is open) the client returns a locally generated ``Synthetic``
reading instead of an error.  Live readings come back as ``Real``.
Synthetic readings are never cached or persisted.

Synthetic ranges:
    temperature  15–35 °C (one decimal)
    humidity     40–80 %
    pressure     1000–1050 mb
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable

import httpx

from modulith.clients.base import ServiceClient
from modulith.core.config import Settings, weather_api_breaker_config, weather_api_retry_plan
from modulith.core.errors import ServiceCallError
from modulith.models.schemas import Real, Sourced, Synthetic, WeatherData
from modulith.resilience.circuit_breaker import CircuitBreaker
from modulith.resilience.policy import Failure, FailureKind, ResilientCallPolicy

logger = logging.getLogger(__name__)

SERVICE_NAME = "weather-feed"

SYNTHETIC_DESCRIPTIONS = ("Sunny", "Partly cloudy", "Cloudy", "Light rain", "Clear")

# Failure kinds answered with synthetic data instead of an error
_FALLBACK_KINDS = frozenset({FailureKind.TRANSIENT_EXHAUSTED, FailureKind.CIRCUIT_OPEN})


class WeatherClient(ServiceClient):
    """Typed access to ``GET /current?city=...`` with synthetic fallback.

    Args:
        base_url: Weather feed origin.
        policy:   The feed's own resilience policy.
        client:   Optional pre-built ``httpx.AsyncClient``.
        rng:      Random source for synthetic readings.
    """

    def __init__(
        self,
        base_url: str,
        policy: ResilientCallPolicy,
        *,
        client: httpx.AsyncClient | None = None,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(SERVICE_NAME, base_url, policy, client=client)
        self._rng = rng or random.Random()

    async def get_weather(self, city: str) -> Sourced[WeatherData] | None:
        """Return current weather for *city*.

        Returns ``None`` when the feed does not know the city.

        Raises:
            ServiceCallError: The feed answered with a payload that cannot
                be used (``NON_RETRYABLE``); this is not papered over.
        """
        logger.info("Fetching weather data for city: %s", city)
        outcome = await self._call("GET", "/current", WeatherData.model_validate, params={"city": city})

        if isinstance(outcome, Failure):
            if outcome.kind in _FALLBACK_KINDS:
                return Synthetic(self._synthesize(city, outcome))
            raise ServiceCallError(self.service_name, outcome.kind, outcome.attempts, outcome.last_error)

        if outcome.value is None:
            logger.warning("Weather data not found for city: %s", city)
            return None

        weather = outcome.value
        logger.info(
            "Fetched weather for %s: %.1f°C, %s",
            weather.location,
            weather.temperature,
            weather.description,
        )
        return Real(weather)

    async def get_weather_for_cities(self, cities: Iterable[str]) -> list[Sourced[WeatherData]]:
        """Fetch cities one at a time; skip unknown cities and failed calls."""
        results: list[Sourced[WeatherData]] = []
        for city in cities:
            try:
                result = await self.get_weather(city)
            except ServiceCallError as exc:
                logger.error("Skipping weather for %s: %s", city, exc)
                continue
            if result is not None:
                results.append(result)

        logger.info("Fetched weather data for %d cities", len(results))
        return results

    def _synthesize(self, city: str, failure: Failure) -> WeatherData:
        logger.warning(
            "Returning synthetic weather data for city: %s (%s: %s)",
            city,
            failure.kind.value,
            failure.last_error,
        )
        rng = self._rng
        return WeatherData(
            location=city,
            temperature=round(15 + rng.random() * 20, 1),
            description=rng.choice(SYNTHETIC_DESCRIPTIONS),
            humidity=40 + rng.random() * 40,
            pressure=1000 + rng.random() * 50,
        )


def build_weather_client(settings: Settings, *, client: httpx.AsyncClient | None = None) -> WeatherClient:
    """Wire a ``WeatherClient`` with its own breaker from *settings*."""
    policy = ResilientCallPolicy(
        SERVICE_NAME,
        timeout=settings.WEATHER_API_TIMEOUT,
        retry_plan=weather_api_retry_plan(settings),
        breaker=CircuitBreaker(SERVICE_NAME, weather_api_breaker_config(settings)),
    )
    return WeatherClient(settings.WEATHER_API_URL, policy, client=client)
