"""Tests for the FastAPI app: health, users and orders routes."""

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from modulith.clients.weather import WeatherClient
from modulith.core.config import Settings
from modulith.main import create_app
from modulith.resilience.circuit_breaker import BreakerConfig, CircuitBreaker
from modulith.resilience.policy import ResilientCallPolicy
from modulith.resilience.retry import RetryPlan


def _weather_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={"location": "New York", "temperature": 25.0, "description": "Sunny", "humidity": 45, "pressure": 1020},
    )


@pytest.fixture
def app(mock_http):
    policy = ResilientCallPolicy(
        "weather-feed",
        retry_plan=RetryPlan(max_attempts=1),
        breaker=CircuitBreaker("weather-feed", BreakerConfig()),
    )
    weather = WeatherClient("http://testserver", policy, client=mock_http(_weather_handler))
    return create_app(Settings(), weather=weather)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


class TestHealthEndpoint:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "modulith"
        assert data["status"] == "healthy"
        assert data["circuits"][0]["name"] == "weather-feed"
        assert data["circuits"][0]["state"] == "closed"

    async def test_request_id_preserved(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"

    async def test_request_id_generated(self, client):
        response = await client.get("/health")
        assert response.headers["X-Request-ID"]


class TestUserRoutes:
    async def test_list(self, client):
        response = await client.get("/api/users")
        assert response.status_code == 200
        assert len(response.json()) == 3

    async def test_get_missing_is_404(self, client):
        response = await client.get("/api/users/99")
        assert response.status_code == 404
        assert response.json()["detail"] == "User with ID 99 not found"

    async def test_create(self, client):
        response = await client.post("/api/users", json={"name": "Ann", "email": "ann@example.com"})
        assert response.status_code == 201
        assert response.json()["id"] == 4

    async def test_create_requires_name_and_email(self, client):
        response = await client.post("/api/users", json={"name": "", "email": ""})
        assert response.status_code == 422


class TestOrderRoutes:
    async def test_get_order_with_weather(self, client):
        response = await client.get("/api/orders/1")
        assert response.status_code == 200
        body = response.json()
        assert body["user_name"] == "John Doe"
        assert body["weather_info"] == "Sunny, 25.0°C"
        assert body["weather_synthetic"] is False

    async def test_get_missing_order(self, client):
        assert (await client.get("/api/orders/99")).status_code == 404

    async def test_orders_for_user(self, client):
        response = await client.get("/api/orders/user/1")
        assert [o["id"] for o in response.json()] == [1, 3]

    async def test_create_order_unknown_user_is_structured_400(self, client):
        response = await client.post(
            "/api/orders",
            json={"user_id": 42, "product_name": "Desk", "amount": 10.0},
            headers={"X-Request-ID": "req-9"},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "USER_NOT_FOUND"
        assert body["request_id"] == "req-9"

    async def test_create_order(self, client):
        response = await client.post("/api/orders", json={"user_id": 2, "product_name": "Desk", "amount": 10.0})
        assert response.status_code == 201
        assert response.json()["user_email"] == "jane@example.com"

    async def test_demo_direct_call(self, client):
        response = await client.get("/api/orders/demo-direct-call")
        assert response.status_code == 200
        assert response.json()["users_found"] == 3
