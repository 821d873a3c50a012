"""Tests for the error hierarchy and StructuredErrorResponse."""

import pytest

from modulith.core.errors import (
    MalformedResponseError,
    ModulithError,
    NonRetryableError,
    NotFoundError,
    RequestRejectedError,
    ServiceCallError,
    StructuredErrorResponse,
    TransientError,
    UserNotFoundError,
)
from modulith.resilience.policy import FailureKind

# ── Error hierarchy ────────────────────────────────────────────────────


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [TransientError, NonRetryableError, NotFoundError, ServiceCallError, UserNotFoundError],
    )
    def test_inherits_base(self, cls) -> None:
        assert issubclass(cls, ModulithError)

    def test_malformed_counts_toward_breaker(self) -> None:
        assert MalformedResponseError("svc").record_failure is True

    def test_rejected_does_not_count_toward_breaker(self) -> None:
        assert issubclass(RequestRejectedError, NonRetryableError)
        assert RequestRejectedError("svc").record_failure is False

    def test_transient_message(self) -> None:
        err = TransientError("weather-feed", "HTTP 503")
        assert str(err) == "Transient failure from weather-feed: HTTP 503"
        assert err.service_name == "weather-feed"

    def test_service_call_error_attributes(self) -> None:
        err = ServiceCallError("user-service", FailureKind.CIRCUIT_OPEN, 0, "Circuit open")
        assert err.kind == FailureKind.CIRCUIT_OPEN
        assert err.attempts == 0
        assert "circuit_open" in str(err)


# ── StructuredErrorResponse ────────────────────────────────────────────


class TestStructuredErrorResponse:
    def test_service_call_error_code(self) -> None:
        exc = ServiceCallError("user-service", FailureKind.TRANSIENT_EXHAUSTED, 4, "HTTP 503")
        resp = StructuredErrorResponse.from_exception(exc, "req-1")
        assert resp.code == "UPSTREAM_TRANSIENT_EXHAUSTED"
        assert resp.request_id == "req-1"

    def test_user_not_found_code(self) -> None:
        resp = StructuredErrorResponse.from_exception(UserNotFoundError(42), "req-2")
        assert resp.code == "USER_NOT_FOUND"
        assert "42" in resp.error

    def test_generic_modulith_error(self) -> None:
        resp = StructuredErrorResponse.from_exception(ModulithError("x"), "req-3")
        assert resp.code == "MODULITH_ERROR"

    def test_unhandled_exception_hides_details(self) -> None:
        resp = StructuredErrorResponse.from_exception(RuntimeError("secret path /etc"), "req-4")
        assert resp.code == "INTERNAL_ERROR"
        assert "secret" not in resp.error
