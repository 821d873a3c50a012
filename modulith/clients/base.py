"""ServiceClient: shared HTTP plumbing for outbound dependencies.

A ``ServiceClient`` owns one pooled ``httpx.AsyncClient`` and one
``ResilientCallPolicy``.  ``_call()`` sends a request, maps the HTTP status
to the error classification the policy understands, deserializes the body
and returns the policy's ``CallOutcome``.  Deserialization runs inside the
policy so a malformed payload is recorded like any other failure.

Status mapping:

    2xx            → parsed payload
    404            → NotFoundError        (authoritative empty result)
    408, 429, 5xx  → TransientError       (retried, breaker-eligible)
    400, 422       → RequestRejectedError (not retried, not breaker-eligible)
    other 4xx      → NonRetryableError    (not retried, breaker-eligible)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

import httpx

from modulith.core.errors import (
    MalformedResponseError,
    NonRetryableError,
    NotFoundError,
    RequestRejectedError,
    TransientError,
)
from modulith.resilience.policy import CallOutcome, ResilientCallPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

# HTTP status codes that are safe to retry
_RETRYABLE_STATUS_CODES = frozenset({408, 429})
_REJECTED_STATUS_CODES = frozenset({400, 422})


def raise_for_status(service_name: str, response: httpx.Response, resource: str) -> None:
    """Translate a non-2xx *response* into a classification error."""
    status = response.status_code
    if 200 <= status < 300:
        return
    if status == 404:
        raise NotFoundError(service_name, resource)
    if status in _RETRYABLE_STATUS_CODES or status >= 500:
        raise TransientError(service_name, f"HTTP {status}")
    if status in _REJECTED_STATUS_CODES:
        raise RequestRejectedError(service_name, f"HTTP {status}: {response.text[:200]}")
    raise NonRetryableError(service_name, f"HTTP {status}")


class ServiceClient:
    """Base class for typed clients of one external HTTP dependency.

    Args:
        service_name: Friendly dependency name (logs, errors).
        base_url:     Dependency origin, e.g. ``http://localhost:8000``.
        policy:       The dependency's own resilience policy.
        client:       Optional pre-built ``httpx.AsyncClient`` (tests inject
                      one backed by ``httpx.MockTransport``).
    """

    def __init__(
        self,
        service_name: str,
        base_url: str,
        policy: ResilientCallPolicy,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.service_name = service_name
        self.policy = policy
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=policy.timeout)

    async def _call(
        self,
        method: str,
        path: str,
        parse: Callable[[Any], T],
        *,
        params: dict | None = None,
        json: dict | None = None,
    ) -> CallOutcome[T]:
        """Send one logical request through the policy; return its outcome."""

        async def operation() -> T:
            try:
                response = await self._client.request(method, path, params=params, json=json)
            except httpx.TransportError as exc:
                raise TransientError(self.service_name, f"{type(exc).__name__}: {exc}") from exc
            raise_for_status(self.service_name, response, path)
            try:
                return parse(response.json())
            except ValueError as exc:
                # Covers JSON decoding and pydantic validation errors.
                raise MalformedResponseError(self.service_name, str(exc)[:200]) from exc

        return await self.policy.execute(operation)

    async def close(self) -> None:
        """Close the pooled httpx client."""
        await self._client.aclose()
