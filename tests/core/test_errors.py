"""Tests for the error taxonomy and HTTP status mapping."""

from __future__ import annotations

import pytest

from device_gateway.core.errors import (
    AuthenticationRequired,
    CommandFailed,
    CommandTimeout,
    DeviceBusy,
    DeviceNotFound,
    NetworkError,
    PermissionDenied,
    RateLimitExceeded,
    ReauthenticationRequired,
    ServerError,
    StateVerificationFailed,
    TokenExpired,
    map_status_error,
)


class TestStatusMapping:
    """Test map_status_error."""

    @pytest.mark.parametrize(
        "status_code,error_class",
        [
            (401, TokenExpired),
            (403, PermissionDenied),
            (404, DeviceNotFound),
            (409, DeviceBusy),
            (423, DeviceBusy),
            (429, RateLimitExceeded),
            (500, ServerError),
            (503, ServerError),
            (418, CommandFailed),
        ],
    )
    def test_error_class(self, status_code, error_class):
        """Test each status maps to its error class."""
        assert isinstance(map_status_error(status_code, vendor="yale"), error_class)

    def test_success_maps_to_none(self):
        """Test 2xx responses are not errors."""
        assert map_status_error(200) is None
        assert map_status_error(204) is None

    def test_not_found_carries_resource(self):
        """Test 404 reports the requested device id."""
        error = map_status_error(404, vendor="august", resource="lock-9")
        assert error.device_id == "lock-9"
        assert str(error) == "[august] Device not found: lock-9"

    def test_rate_limit_honors_retry_after(self):
        """Test Retry-After overrides the default rate-limit delay."""
        assert map_status_error(429).retry_delay == 60.0
        assert map_status_error(429, retry_after="7").retry_delay == 7.0
        assert map_status_error(429, retry_after="soon").retry_delay == 60.0

    @pytest.mark.parametrize(
        "status_code,recoverable",
        [(500, False), (501, False), (502, True), (503, True), (504, True)],
    )
    def test_server_error_recoverability(self, status_code, recoverable):
        """Test only gateway/unavailable/timeout 5xx errors are recoverable."""
        assert map_status_error(status_code).is_recoverable is recoverable


class TestErrorAttributes:
    """Test recoverability, delays and redaction."""

    @pytest.mark.parametrize(
        "error,recoverable,delay",
        [
            (TokenExpired("t"), True, 1.0),
            (RateLimitExceeded(), True, 60.0),
            (DeviceBusy("b"), True, 5.0),
            (CommandTimeout("t"), True, 2.0),
            (NetworkError("n"), True, 0.0),
            (DeviceNotFound("d"), False, 0.0),
            (PermissionDenied("p"), False, 0.0),
            (StateVerificationFailed("s"), False, 0.0),
        ],
    )
    def test_recovery_table(self, error, recoverable, delay):
        """Test recoverability and recommended delay per class."""
        assert error.is_recoverable is recoverable
        assert error.retry_delay == delay

    def test_reauthentication_is_authentication_required(self):
        """Test callers catching AuthenticationRequired also see refresh failures."""
        assert isinstance(ReauthenticationRequired("x"), AuthenticationRequired)

    def test_user_message_redacts_secrets(self):
        """Test tokens and emails never reach user-facing messages."""
        error = CommandFailed(
            "rejected for jane@example.com with Bearer abc.def-123 access_token=xyz",
            vendor="smartthings",
        )
        message = error.user_message
        assert "jane@example.com" not in message
        assert "abc.def-123" not in message
        assert "xyz" not in message
        assert "[REDACTED]" in message

    def test_to_dict(self):
        """Test serialized error contents."""
        data = DeviceBusy("busy", vendor="yale").to_dict()
        assert data["error"] == "DeviceBusy"
        assert data["recoverable"] is True
        assert data["retry_delay"] == 5.0
        assert data["message"] == "[yale] busy"
