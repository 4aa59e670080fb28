"""OAuth token record persisted in the credential store."""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from device_gateway.core.models.access import TenancyScope, utcnow


class TokenRecord(BaseModel):
    """OAuth credentials for one vendor account.

    Records are never deleted on revocation; they are marked inactive
    and retained for audit.

    Attributes:
        vendor: Vendor name the token belongs to
        access_token: Current bearer token
        refresh_token: Token used to obtain a new access token
        expires_at: Access token expiry (UTC)
        scope: OAuth scope string granted by the vendor
        tenancy: Optional property/unit the credentials are bound to
        is_active: False after revocation or failed refresh
    """

    vendor: str = Field(..., min_length=1)
    access_token: str = Field(..., repr=False)
    refresh_token: str | None = Field(default=None, repr=False)
    expires_at: datetime
    scope: str = ""
    tenancy: TenancyScope | None = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def expires_within(self, margin: float, now: datetime | None = None) -> bool:
        """Check whether the token expires within `margin` seconds."""
        now = now or utcnow()
        return self.expires_at - now <= timedelta(seconds=margin)

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_within(0, now)

    def invalidate(self) -> None:
        """Soft-delete the record."""
        self.is_active = False
        self.updated_at = utcnow()

    @classmethod
    def from_oauth_response(
        cls,
        vendor: str,
        payload: dict,
        tenancy: TenancyScope | None = None,
        previous_refresh_token: str | None = None,
        now: datetime | None = None,
    ) -> TokenRecord:
        """Build a record from a standard OAuth token response.

        Args:
            vendor: Vendor name
            payload: Decoded JSON with access_token, refresh_token, expires_in
            tenancy: Optional tenancy scope
            previous_refresh_token: Kept when the vendor does not rotate it
            now: Issue time (default: current UTC time)

        Returns:
            New TokenRecord

        Raises:
            KeyError: If access_token is missing
        """
        now = now or utcnow()
        expires_in = float(payload.get("expires_in", 3600))
        return cls(
            vendor=vendor,
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            expires_at=now + timedelta(seconds=expires_in),
            scope=payload.get("scope", ""),
            tenancy=tenancy,
            created_at=now,
            updated_at=now,
        )
