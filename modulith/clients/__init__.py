"""Resilient HTTP clients for the user service and the weather feed."""

from modulith.clients.base import ServiceClient
from modulith.clients.user_api import UserApiClient, build_user_api_client
from modulith.clients.weather import WeatherClient, build_weather_client

__all__ = [
    "ServiceClient",
    "UserApiClient",
    "WeatherClient",
    "build_user_api_client",
    "build_weather_client",
]
