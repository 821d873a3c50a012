"""UserApiClient: resilient client for the user service over HTTP.

User data is critical: a failed call is surfaced to the caller as
``ServiceCallError`` and never replaced by fabricated data.  Not-found is an
authoritative answer and comes back as ``None`` (or an empty list).
"""

from __future__ import annotations

import logging
from typing import TypeVar

import httpx
from pydantic import TypeAdapter

from modulith.clients.base import ServiceClient
from modulith.core.config import Settings, user_api_breaker_config, user_api_retry_plan
from modulith.core.errors import ServiceCallError
from modulith.models.schemas import User, UserCreate
from modulith.resilience.circuit_breaker import CircuitBreaker
from modulith.resilience.policy import CallOutcome, Failure, FailureKind, ResilientCallPolicy

logger = logging.getLogger(__name__)

SERVICE_NAME = "user-service"

_USER_LIST = TypeAdapter(list[User])

T = TypeVar("T")


class UserApiClient(ServiceClient):
    """Typed access to ``/api/users`` on the user service."""

    def __init__(self, base_url: str, policy: ResilientCallPolicy, *, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(SERVICE_NAME, base_url, policy, client=client)

    def _unwrap(self, outcome: CallOutcome[T], action: str) -> T:
        if isinstance(outcome, Failure):
            logger.error("Failed to %s: %s (%s)", action, outcome.last_error, outcome.kind.value)
            raise ServiceCallError(self.service_name, outcome.kind, outcome.attempts, outcome.last_error)
        return outcome.value

    async def get_user(self, user_id: int) -> User | None:
        """Fetch one user; ``None`` when the service says it does not exist."""
        logger.info("Fetching user with ID: %d", user_id)
        outcome = await self._call("GET", f"/api/users/{user_id}", User.model_validate)
        user = self._unwrap(outcome, f"fetch user {user_id}")
        if user is None:
            logger.warning("User with ID %d not found", user_id)
        else:
            logger.info("Fetched user: %s (%s)", user.name, user.email)
        return user

    async def get_all_users(self) -> list[User]:
        logger.info("Fetching all users")
        outcome = await self._call("GET", "/api/users", _USER_LIST.validate_python)
        users = self._unwrap(outcome, "fetch users") or []
        logger.info("Fetched %d users", len(users))
        return users

    async def create_user(self, data: UserCreate) -> User:
        """Create a user; a validation rejection surfaces as ``NON_RETRYABLE``."""
        outcome = await self._call("POST", "/api/users", User.model_validate, json=data.model_dump())
        user = self._unwrap(outcome, f"create user {data.name!r}")
        if user is None:
            # 404 on the collection itself: the service is not mounted where we expect.
            raise ServiceCallError(self.service_name, FailureKind.NON_RETRYABLE, outcome.attempt, "endpoint not found")
        return user


def build_user_api_client(settings: Settings, *, client: httpx.AsyncClient | None = None) -> UserApiClient:
    """Wire a ``UserApiClient`` with its own breaker from *settings*."""
    policy = ResilientCallPolicy(
        SERVICE_NAME,
        timeout=settings.USER_API_TIMEOUT,
        retry_plan=user_api_retry_plan(settings),
        breaker=CircuitBreaker(SERVICE_NAME, user_api_breaker_config(settings)),
    )
    return UserApiClient(settings.USER_API_URL, policy, client=client)
