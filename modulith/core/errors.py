"""Structured errors for modulith.

Two families live here:

* classification errors raised *inside* an outbound operation
  (``TransientError``, ``NonRetryableError``, ``NotFoundError``) and read
  by ``ResilientCallPolicy`` to decide whether to retry and whether the
  breaker sees the outcome;
* errors raised *to callers* (``ServiceCallError``, ``UserNotFoundError``),
  which ``StructuredErrorResponse`` maps to machine-readable codes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from modulith.resilience.policy import FailureKind


class ModulithError(Exception):
    """Base exception for all modulith errors."""


# ── Outcome classification ──────────────────────────────────────────────


class TransientError(ModulithError):
    """A retryable failure: the dependency may answer on a later attempt.

    Raised for retryable HTTP statuses (408, 429, 5xx).
    """

    def __init__(self, service_name: str, detail: str = "") -> None:
        self.service_name = service_name
        self.detail = detail
        msg = f"Transient failure from {service_name}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class NonRetryableError(ModulithError):
    """A failure that another attempt cannot fix.

    Attributes:
        service_name: Name of the dependency that produced the failure.
        detail: Human-readable reason.
        record_failure: Whether the outcome counts toward the breaker's
            failure window.
    """

    record_failure = True

    def __init__(self, service_name: str, detail: str = "") -> None:
        self.service_name = service_name
        self.detail = detail
        msg = f"Non-retryable failure from {service_name}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class MalformedResponseError(NonRetryableError):
    """The dependency answered with a payload that cannot be deserialized."""


class RequestRejectedError(NonRetryableError):
    """The dependency rejected our request as invalid (HTTP 400/422).

    The dependency is healthy, so the breaker does not see this outcome.
    """

    record_failure = False


class NotFoundError(ModulithError):
    """Authoritative absence of data (HTTP 404). Not a failure."""

    def __init__(self, service_name: str, resource: str) -> None:
        self.service_name = service_name
        self.resource = resource
        super().__init__(f"{resource} not found at {service_name}")


# ── Caller-facing errors ────────────────────────────────────────────────


class ServiceCallError(ModulithError):
    """Raised by a client when an outbound call ultimately failed.

    Attributes:
        service_name: Friendly name of the failing dependency.
        kind: The ``FailureKind`` reported by the resilience policy.
        attempts: Number of attempts made (0 when the circuit was open).
        detail: The last error observed.
    """

    def __init__(self, service_name: str, kind: FailureKind, attempts: int, detail: str = "") -> None:
        self.service_name = service_name
        self.kind = kind
        self.attempts = attempts
        self.detail = detail
        msg = f"Call to {service_name} failed ({kind.value}) after {attempts} attempt(s)"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class UserNotFoundError(ModulithError):
    """Raised when an order references a user that does not exist."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"User with ID {user_id} not found")


class StructuredErrorResponse(BaseModel):
    """Structured error response.

    Returns ``{"error": str, "code": str, "request_id": str}``, never stack traces.
    """

    error: str
    code: str
    request_id: str

    @classmethod
    def from_exception(cls, exc: Exception, request_id: str) -> "StructuredErrorResponse":
        """Create from an exception, mapping to machine-readable codes.

        Never leaks internal details for unhandled exceptions.
        """
        if isinstance(exc, ServiceCallError):
            return cls(
                error=str(exc),
                code=f"UPSTREAM_{exc.kind.name}",
                request_id=request_id,
            )
        if isinstance(exc, UserNotFoundError):
            return cls(
                error=str(exc),
                code="USER_NOT_FOUND",
                request_id=request_id,
            )
        if isinstance(exc, ModulithError):
            return cls(
                error=str(exc),
                code="MODULITH_ERROR",
                request_id=request_id,
            )
        # Unhandled, never expose internal details
        return cls(
            error="An internal error occurred",
            code="INTERNAL_ERROR",
            request_id=request_id,
        )
