"""Orders module: in-memory orders enriched from users and weather.

``OrderService`` reads users through the in-process ``UserDirectory`` and
decorates single-order lookups with current weather from ``WeatherClient``.
Weather is best-effort: a failed lookup yields ``"Weather unavailable"``,
never a failed order request.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, HTTPException, Request, status

from modulith.clients.weather import WeatherClient
from modulith.core.errors import ServiceCallError, UserNotFoundError
from modulith.models.schemas import Order, OrderCreate, User
from modulith.modules.users import UserDirectory

logger = logging.getLogger(__name__)

WEATHER_UNAVAILABLE = "Weather unavailable"


def _seed_orders() -> list[Order]:
    now = datetime.now(timezone.utc)
    return [
        Order(id=1, user_id=1, product_name="Laptop", amount=999.99, order_date=now - timedelta(days=10)),
        Order(id=2, user_id=2, product_name="Mouse", amount=29.99, order_date=now - timedelta(days=5)),
        Order(id=3, user_id=1, product_name="Keyboard", amount=79.99, order_date=now - timedelta(days=2)),
    ]


def _with_user(order: Order, user: User | None) -> Order:
    if user is None:
        return order
    return order.model_copy(update={"user_name": user.name, "user_email": user.email})


class OrderService:
    """Order lookups and creation.

    Args:
        directory:    Users capability, called in-process.
        weather:      Weather client used to decorate single orders.
        weather_city: City whose weather is attached to orders.
        orders:       Initial orders; defaults to the demo seed.
    """

    def __init__(
        self,
        directory: UserDirectory,
        weather: WeatherClient,
        *,
        weather_city: str = "New York",
        orders: list[Order] | None = None,
    ) -> None:
        self._directory = directory
        self._weather = weather
        self._weather_city = weather_city
        self._orders: dict[int, Order] = {o.id: o for o in (_seed_orders() if orders is None else orders)}
        self._lock = asyncio.Lock()

    async def list_orders(self) -> list[Order]:
        return [_with_user(o, await self._directory.get_user(o.user_id)) for o in self._orders.values()]

    async def get_order(self, order_id: int) -> Order | None:
        order = self._orders.get(order_id)
        if order is None:
            return None
        order = _with_user(order, await self._directory.get_user(order.user_id))

        try:
            weather = await self._weather.get_weather(self._weather_city)
        except ServiceCallError as exc:
            logger.warning("Weather lookup for order %d failed: %s", order_id, exc)
            return order.model_copy(update={"weather_info": WEATHER_UNAVAILABLE})
        if weather is None:
            return order
        return order.model_copy(
            update={
                "weather_info": f"{weather.value.description}, {weather.value.temperature}°C",
                "weather_synthetic": weather.synthetic,
            }
        )

    async def get_orders_for_user(self, user_id: int) -> list[Order]:
        user = await self._directory.get_user(user_id)
        return [_with_user(o, user) for o in self._orders.values() if o.user_id == user_id]

    async def create_order(self, data: OrderCreate) -> Order:
        """Create an order for an existing user.

        Raises:
            UserNotFoundError: ``data.user_id`` is unknown to the directory.
        """
        user = await self._directory.get_user(data.user_id)
        if user is None:
            raise UserNotFoundError(data.user_id)
        async with self._lock:
            next_id = max(self._orders, default=0) + 1
            order = Order(id=next_id, **data.model_dump())
            self._orders[next_id] = order
        return _with_user(order, user)


# ── Routes ──────────────────────────────────────────────────────────────

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _service(request: Request) -> OrderService:
    return request.app.state.orders


@router.get("", response_model=list[Order])
async def list_orders(request: Request) -> list[Order]:
    return await _service(request).list_orders()


@router.get("/demo-direct-call")
async def demo_direct_call(request: Request) -> dict:
    """List users by calling the users module in-process, not over HTTP."""
    users = await request.app.state.users.list_users()
    return {
        "message": "Fetched users through the in-process user directory",
        "users_found": len(users),
        "users": [u.model_dump(mode="json") for u in users],
    }


@router.get("/user/{user_id}", response_model=list[Order])
async def get_orders_for_user(user_id: int, request: Request) -> list[Order]:
    return await _service(request).get_orders_for_user(user_id)


@router.get("/{order_id}", response_model=Order)
async def get_order(order_id: int, request: Request) -> Order:
    order = await _service(request).get_order(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order with ID {order_id} not found")
    return order


@router.post("", response_model=Order, status_code=status.HTTP_201_CREATED)
async def create_order(data: OrderCreate, request: Request) -> Order:
    # UserNotFoundError is turned into a 400 by the app-level handler.
    return await _service(request).create_order(data)
