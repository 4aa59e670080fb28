"""Role, tenancy and guest-grant models consumed by authorization.

Role associations and grants are resolved by the property-management
backend; the gateway only reads them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class EntityType(str, Enum):
    """Level of the tenancy hierarchy a role applies to."""

    PORTFOLIO = "portfolio"
    PROPERTY = "property"
    UNIT = "unit"


class Role(str, Enum):
    """Role a user holds within a tenancy entity."""

    OWNER = "owner"
    PORTFOLIO_ADMIN = "portfolio_admin"
    PROPERTY_MANAGER = "property_manager"
    TENANT = "tenant"
    GUEST = "guest"


class DeviceOperation(str, Enum):
    """Operations subject to authorization and access auditing."""

    LOCK = "lock"
    UNLOCK = "unlock"
    VIEW_STATUS = "view_status"
    CONTROL = "control"
    CHANGE_SETTINGS = "change_settings"
    VIEW_ACCESS_HISTORY = "view_access_history"


class TenancyScope(BaseModel):
    """Property/unit scope a device or credential belongs to.

    Attributes:
        property_id: Owning property, if known
        unit_id: Owning unit within the property, if any
    """

    model_config = ConfigDict(frozen=True)

    property_id: str | None = Field(default=None, description="Property identifier")
    unit_id: str | None = Field(default=None, description="Unit identifier")

    @property
    def key(self) -> str:
        """Stable string form used for credential lookup."""
        return f"{self.property_id or '*'}/{self.unit_id or '*'}"

    @property
    def is_empty(self) -> bool:
        """True when neither property nor unit is set."""
        return self.property_id is None and self.unit_id is None


class RoleAssociation(BaseModel):
    """A role the user holds over one portfolio, property or unit.

    Examples:
        >>> RoleAssociation(
        ...     entity_type=EntityType.UNIT, entity_id="unit-4b", role=Role.TENANT
        ... )
    """

    model_config = ConfigDict(frozen=True)

    entity_type: EntityType = Field(..., description="Hierarchy level")
    entity_id: str = Field(..., description="Portfolio, property or unit id")
    role: Role = Field(..., description="Role within that entity")


class GuestGrant(BaseModel):
    """Time-boxed access to a fixed list of devices.

    Attributes:
        device_ids: Devices the guest may operate
        valid_from: Start of the access window (inclusive)
        valid_until: End of the access window (inclusive)
        property_id: Optional property the grant is restricted to
        unit_id: Optional unit the grant is restricted to
        is_active: False once the grant has been revoked
    """

    device_ids: list[str] = Field(default_factory=list)
    valid_from: datetime
    valid_until: datetime
    property_id: str | None = None
    unit_id: str | None = None
    is_active: bool = True

    def is_valid_at(self, now: datetime) -> bool:
        """Check whether the access window contains the given instant."""
        return self.is_active and self.valid_from <= now <= self.valid_until

    def covers(self, device_id: str, scope: TenancyScope | None) -> bool:
        """Check device id and, when the grant is scoped, the device's scope.

        Args:
            device_id: Target device
            scope: Tenancy scope of the target device

        Returns:
            True if the grant applies to the device
        """
        if device_id not in self.device_ids:
            return False
        if self.property_id is not None:
            if scope is None or scope.property_id != self.property_id:
                return False
        if self.unit_id is not None:
            if scope is None or scope.unit_id != self.unit_id:
                return False
        return True


class UserContext(BaseModel):
    """Acting user with resolved roles, supplied by the caller.

    Attributes:
        user_id: Acting user identifier
        roles: Role associations across the tenancy hierarchy
        guest_grants: Guest grants held by the user
    """

    user_id: str = Field(..., min_length=1)
    roles: list[RoleAssociation] = Field(default_factory=list)
    guest_grants: list[GuestGrant] = Field(default_factory=list)

    def roles_for(self, entity_type: EntityType, entity_id: str | None) -> set[Role]:
        """Roles held on a specific entity."""
        if entity_id is None:
            return set()
        return {
            r.role
            for r in self.roles
            if r.entity_type == entity_type and r.entity_id == entity_id
        }


def utcnow() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)
