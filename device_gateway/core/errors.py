"""Error taxonomy for vendor integration and device control.

Every error raised inside the gateway derives from DeviceGatewayError,
which carries recoverability information used by the retry engine and
surfaced to callers.
"""

from __future__ import annotations

from device_gateway.security.redaction import redact


class DeviceGatewayError(Exception):
    """Base exception for all gateway errors.

    Attributes:
        message: Human-readable error message
        vendor: Optional vendor name that raised the error
        is_recoverable: Whether retrying later may succeed
        retry_delay: Recommended delay before retrying (0.0 = use backoff)
        recovery_suggestion: Optional hint for the caller
    """

    is_recoverable: bool = False
    retry_delay: float = 0.0
    recovery_suggestion: str | None = None

    def __init__(self, message: str, vendor: str | None = None) -> None:
        self.message = message
        self.vendor = vendor
        super().__init__(f"[{vendor}] {message}" if vendor else message)

    @property
    def user_message(self) -> str:
        """Message safe to log or show to the caller."""
        return redact(str(self))

    def to_dict(self) -> dict[str, object]:
        """Serialize error for audit metadata and API responses."""
        return {
            "error": type(self).__name__,
            "message": self.user_message,
            "recoverable": self.is_recoverable,
            "retry_delay": self.retry_delay,
            "suggestion": self.recovery_suggestion,
        }


class AuthenticationRequired(DeviceGatewayError):
    """No usable credentials exist for the vendor."""

    recovery_suggestion = "Connect the vendor account to continue."


class ReauthenticationRequired(AuthenticationRequired):
    """Refresh failed; the OAuth flow must be restarted."""

    recovery_suggestion = "Sign in to the vendor account again."


class AuthenticationFailed(DeviceGatewayError):
    """Vendor rejected the supplied credentials."""

    recovery_suggestion = "Check the vendor credentials and try again."


class TokenExpired(DeviceGatewayError):
    """Access token expired; recoverable by refreshing."""

    is_recoverable = True
    retry_delay = 1.0


class RateLimitExceeded(DeviceGatewayError):
    """Request budget exhausted for the vendor or resource."""

    is_recoverable = True
    recovery_suggestion = "Wait a moment before sending more commands."

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        vendor: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, vendor)
        self.retry_delay = retry_after if retry_after is not None else 60.0


class DeviceBusy(DeviceGatewayError):
    """Device is processing another command."""

    is_recoverable = True
    retry_delay = 5.0


class DeviceOffline(DeviceGatewayError):
    """Device is not reachable through its vendor cloud."""

    recovery_suggestion = "Check the device's power and network connection."

    def __init__(self, device_id: str, vendor: str | None = None) -> None:
        super().__init__(f"Device offline: {device_id}", vendor)
        self.device_id = device_id


class DeviceNotFound(DeviceGatewayError):
    """Device id is unknown to the vendor or the local cache."""

    def __init__(self, device_id: str, vendor: str | None = None) -> None:
        super().__init__(f"Device not found: {device_id}", vendor)
        self.device_id = device_id


class InvalidDeviceId(DeviceGatewayError):
    """Device id does not match the vendor's id format."""

    def __init__(self, device_id: str, vendor: str | None = None) -> None:
        super().__init__(f"Invalid device id: {device_id}", vendor)
        self.device_id = device_id


class CommandNotSupported(DeviceGatewayError):
    """Device lacks the capability required by a command."""

    def __init__(self, command: str, device_id: str, vendor: str | None = None) -> None:
        super().__init__(
            f"Command '{command}' not supported by device {device_id}", vendor
        )
        self.command = command
        self.device_id = device_id


class CommandFailed(DeviceGatewayError):
    """Vendor accepted the request but reported a failure."""

    def __init__(self, reason: str, vendor: str | None = None) -> None:
        super().__init__(f"Command failed: {reason}", vendor)
        self.reason = reason


class CommandTimeout(DeviceGatewayError):
    """Vendor call or command execution exceeded its deadline."""

    is_recoverable = True
    retry_delay = 2.0


class StateVerificationFailed(DeviceGatewayError):
    """Re-fetched device state does not match the commanded state."""

    recovery_suggestion = "Check the device and try the command again."

    def __init__(self, detail: str, vendor: str | None = None) -> None:
        super().__init__(f"State verification failed: {detail}", vendor)
        self.detail = detail


class SecurityPolicyViolation(DeviceGatewayError):
    """Operation blocked by a device security policy."""

    def __init__(self, reason: str, vendor: str | None = None) -> None:
        super().__init__(f"Security policy violation: {reason}", vendor)
        self.reason = reason


class PermissionDenied(DeviceGatewayError):
    """Caller is not authorized for the operation."""

    recovery_suggestion = "Ask a property manager for access."


class ProofOfPresenceFailed(DeviceGatewayError):
    """Secondary confirmation was declined or could not be completed."""

    recovery_suggestion = "Confirm your identity to unlock the door."


class NetworkError(DeviceGatewayError):
    """Transport-level failure talking to the vendor."""

    is_recoverable = True
    recovery_suggestion = "Check your internet connection."


class ServerError(DeviceGatewayError):
    """Vendor returned a 5xx response."""

    def __init__(self, status_code: int, vendor: str | None = None) -> None:
        super().__init__(f"Server error: HTTP {status_code}", vendor)
        self.status_code = status_code
        self.is_recoverable = status_code in (502, 503, 504)


class MappingError(DeviceGatewayError):
    """Vendor payload did not have the expected shape."""


def map_status_error(
    status_code: int,
    vendor: str | None = None,
    resource: str | None = None,
    retry_after: str | None = None,
) -> DeviceGatewayError | None:
    """Map an HTTP status code to a gateway error.

    Args:
        status_code: HTTP response status
        vendor: Vendor name for error context
        resource: Resource id used in not-found errors
        retry_after: Raw Retry-After header value, if any

    Returns:
        Matching error, or None for 2xx responses
    """
    if 200 <= status_code < 300:
        return None
    if status_code == 401:
        return TokenExpired("Access token expired or revoked", vendor)
    if status_code == 403:
        return PermissionDenied("Vendor denied access to the resource", vendor)
    if status_code == 404:
        return DeviceNotFound(resource or "unknown", vendor)
    if status_code in (409, 423):
        return DeviceBusy(f"Device busy (HTTP {status_code})", vendor)
    if status_code == 429:
        delay: float | None = None
        if retry_after:
            try:
                delay = float(retry_after)
            except ValueError:
                delay = None
        return RateLimitExceeded("Vendor rate limit exceeded", vendor, delay)
    if status_code >= 500:
        return ServerError(status_code, vendor)
    return CommandFailed(f"Unexpected HTTP {status_code}", vendor)
