"""Role-based authorization for device operations.

Decisions use the caller's resolved role associations and guest grants
against the device's tenancy scope. Unlocking additionally requires a
proof-of-presence confirmation after authorization succeeds.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Protocol

from pydantic import BaseModel

from device_gateway.core.errors import (
    PermissionDenied,
    ProofOfPresenceFailed,
    SecurityPolicyViolation,
)
from device_gateway.core.models.access import (
    DeviceOperation,
    EntityType,
    Role,
    UserContext,
    utcnow,
)
from device_gateway.core.models.command import (
    DeviceCommand,
    ExecuteCustom,
    LockCommand,
    SetAttribute,
    UnlockCommand,
)
from device_gateway.core.models.device import DeviceEnvelope, LockDevice
from device_gateway.services.audit import AuditCategory, AuditLogger, AuditOutcome

logger = logging.getLogger(__name__)

PortfolioResolver = Callable[[str], Awaitable[str | None]]

ADMIN_ROLES = frozenset({Role.OWNER, Role.PORTFOLIO_ADMIN})

TENANT_OPERATIONS = frozenset(
    {
        DeviceOperation.LOCK,
        DeviceOperation.UNLOCK,
        DeviceOperation.VIEW_STATUS,
        DeviceOperation.CONTROL,
    }
)
MANAGER_OPERATIONS = TENANT_OPERATIONS | {
    DeviceOperation.CHANGE_SETTINGS,
    DeviceOperation.VIEW_ACCESS_HISTORY,
}
GUEST_OPERATIONS = TENANT_OPERATIONS


class ProofOfPresenceProvider(Protocol):
    """Interactive confirmation (e.g., biometric prompt) on the caller's device."""

    async def confirm(
        self, user: UserContext, device: DeviceEnvelope, operation: DeviceOperation
    ) -> bool: ...


class AuthorizationDecision(BaseModel):
    """Outcome of an authorization check."""

    allowed: bool
    reason: str
    policy_violation: bool = False


def operation_for(command: DeviceCommand) -> DeviceOperation:
    """Authorization operation a command falls under."""
    if isinstance(command, LockCommand):
        return DeviceOperation.LOCK
    if isinstance(command, UnlockCommand):
        return DeviceOperation.UNLOCK
    if isinstance(command, (SetAttribute, ExecuteCustom)):
        return DeviceOperation.CHANGE_SETTINGS
    return DeviceOperation.CONTROL


class AuthorizationService:
    """Evaluates access rules for a user, device and operation.

    Rules are applied in order:
        1. Remote operation disabled on the lock: deny
        2. Owner or portfolio admin over the device's portfolio: grant
        3. Property manager of the device's property, or tenant of its unit: grant
        4. Active guest grant covering the device and its scope: grant
        5. Otherwise deny

    Devices without a tenancy scope can only be reached via guest grants.
    """

    def __init__(
        self,
        audit: AuditLogger,
        portfolio_resolver: PortfolioResolver | None = None,
        proof_of_presence: ProofOfPresenceProvider | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._audit = audit
        self._portfolio_resolver = portfolio_resolver
        self._proof_of_presence = proof_of_presence
        self._clock = clock

    async def evaluate(
        self, user: UserContext, device: DeviceEnvelope, operation: DeviceOperation
    ) -> AuthorizationDecision:
        """Apply the access rules without raising.

        Args:
            user: Acting user with resolved roles
            device: Target device
            operation: Requested operation

        Returns:
            Decision with the matching rule as reason
        """
        if isinstance(device, LockDevice) and not device.remote_operation_enabled:
            return AuthorizationDecision(
                allowed=False,
                reason="remote operation disabled for this lock",
                policy_violation=True,
            )

        if device.property_id and self._portfolio_resolver is not None:
            portfolio_id = await self._portfolio_resolver(device.property_id)
            if user.roles_for(EntityType.PORTFOLIO, portfolio_id) & ADMIN_ROLES:
                return AuthorizationDecision(allowed=True, reason="portfolio admin")

        property_roles = user.roles_for(EntityType.PROPERTY, device.property_id)
        if property_roles & ADMIN_ROLES:
            return AuthorizationDecision(allowed=True, reason="property owner")
        if Role.PROPERTY_MANAGER in property_roles and operation in MANAGER_OPERATIONS:
            return AuthorizationDecision(allowed=True, reason="property manager")

        unit_roles = user.roles_for(EntityType.UNIT, device.unit_id)
        if Role.TENANT in unit_roles and operation in TENANT_OPERATIONS:
            return AuthorizationDecision(allowed=True, reason="unit tenant")

        now = self._clock()
        if operation in GUEST_OPERATIONS:
            for grant in user.guest_grants:
                if grant.covers(device.id, device.scope) and grant.is_valid_at(now):
                    return AuthorizationDecision(allowed=True, reason="guest grant")

        return AuthorizationDecision(allowed=False, reason="no matching role or grant")

    async def authorize(
        self, user: UserContext, device: DeviceEnvelope, operation: DeviceOperation
    ) -> AuthorizationDecision:
        """Check access and raise when denied.

        Raises:
            SecurityPolicyViolation: If a device policy blocks the operation
            PermissionDenied: If no rule grants access
        """
        decision = await self.evaluate(user, device, operation)
        metadata = {
            "user_id": user.user_id,
            "device_id": device.id,
            "operation": operation,
            "reason": decision.reason,
        }
        if decision.allowed:
            logger.info(
                f"Access granted: user={user.user_id} device={device.id} "
                f"operation={operation.value} ({decision.reason})"
            )
            self._audit.record(
                AuditCategory.SECURITY, "access_granted", AuditOutcome.SUCCESS, **metadata
            )
            return decision

        logger.warning(
            f"Access denied: user={user.user_id} device={device.id} "
            f"operation={operation.value} ({decision.reason})"
        )
        self._audit.record(
            AuditCategory.SECURITY, "access_denied", AuditOutcome.FAILED, **metadata
        )
        if decision.policy_violation:
            raise SecurityPolicyViolation(decision.reason, device.vendor)
        raise PermissionDenied(
            f"User {user.user_id} may not {operation.value} device {device.id}",
            device.vendor,
        )

    async def confirm_presence(
        self, user: UserContext, device: DeviceEnvelope, operation: DeviceOperation
    ) -> None:
        """Run the proof-of-presence step.

        Raises:
            ProofOfPresenceFailed: If no provider is configured, the user
                declines, or the provider fails
        """
        if self._proof_of_presence is None:
            raise ProofOfPresenceFailed(
                "Proof of presence is required but unavailable", device.vendor
            )
        try:
            confirmed = await self._proof_of_presence.confirm(user, device, operation)
        except Exception as e:
            self._audit.record(
                AuditCategory.SECURITY, "proof_of_presence", AuditOutcome.FAILED,
                user_id=user.user_id, device_id=device.id, error=e,
            )
            raise ProofOfPresenceFailed(
                f"Proof of presence could not be completed: {e}", device.vendor
            ) from e

        outcome = AuditOutcome.SUCCESS if confirmed else AuditOutcome.FAILED
        self._audit.record(
            AuditCategory.SECURITY, "proof_of_presence", outcome,
            user_id=user.user_id, device_id=device.id,
        )
        if not confirmed:
            raise ProofOfPresenceFailed("Proof of presence declined", device.vendor)
