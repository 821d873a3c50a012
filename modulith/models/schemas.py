"""Pydantic models shared by the API modules, the clients and the worker.

Also defines the ``Real`` / ``Synthetic`` tags that mark whether a value came
from a live dependency or was generated locally as a fallback.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generic, TypeVar, Union

from pydantic import BaseModel, Field

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    service: str
    version: str
    status: str
    uptime_seconds: float
    circuits: list[dict] = Field(default_factory=list)


# ── Users ───────────────────────────────────────────────────────────────


class UserCreate(BaseModel):
    """Body for POST /api/users."""

    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")


class User(BaseModel):
    id: int
    name: str
    email: str
    created_at: datetime = Field(default_factory=_utcnow)


# ── Orders ──────────────────────────────────────────────────────────────


class OrderCreate(BaseModel):
    """Body for POST /api/orders."""

    user_id: int = Field(..., ge=1)
    product_name: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., gt=0)


class Order(BaseModel):
    id: int
    user_id: int
    product_name: str
    amount: float
    order_date: datetime = Field(default_factory=_utcnow)
    user_name: str = ""
    user_email: str = ""
    weather_info: str | None = None
    weather_synthetic: bool = False


# ── Weather ─────────────────────────────────────────────────────────────


class WeatherData(BaseModel):
    """Current conditions for one location, as served by GET /current."""

    location: str
    temperature: float
    description: str
    humidity: float
    pressure: float
    timestamp: datetime = Field(default_factory=_utcnow)


@dataclass(frozen=True)
class Real(Generic[T]):
    """A value served by the live dependency."""

    value: T
    synthetic = False


@dataclass(frozen=True)
class Synthetic(Generic[T]):
    """A locally generated stand-in returned while the dependency is failing."""

    value: T
    synthetic = True


Sourced = Union[Real[T], Synthetic[T]]
