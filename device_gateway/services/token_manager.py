"""OAuth token lifecycle for one vendor.

Obtains tokens through the vendor's token endpoint, caches them, and
refreshes them shortly before expiry. Concurrent callers that find an
expiring token share a single refresh request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import httpx

from device_gateway.core.errors import (
    AuthenticationFailed,
    AuthenticationRequired,
    MappingError,
    NetworkError,
    ReauthenticationRequired,
    ServerError,
)
from device_gateway.core.models.access import TenancyScope, utcnow
from device_gateway.core.models.token import TokenRecord
from device_gateway.security.credential_store import CredentialStore, credential_key
from device_gateway.services.audit import AuditCategory, AuditLogger, AuditOutcome

logger = logging.getLogger(__name__)


class TokenManager:
    """Token cache and refresher for one vendor account.

    Attributes:
        vendor: Vendor name
        token_url: Absolute URL of the vendor's OAuth token endpoint
        refresh_margin: Seconds before expiry at which tokens are refreshed
        scope: Tenancy scope the credentials are stored under
    """

    def __init__(
        self,
        vendor: str,
        store: CredentialStore,
        token_url: str,
        audit: AuditLogger,
        client_id: str | None = None,
        client_secret: str | None = None,
        scope: TenancyScope | None = None,
        refresh_margin: float = 300.0,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.vendor = vendor
        self.token_url = token_url
        self.refresh_margin = refresh_margin
        self.scope = scope
        self._store = store
        self._audit = audit
        self._client_id = client_id
        self._client_secret = client_secret
        self._clock = clock
        self._cached: TokenRecord | None = None
        self._refresh_lock = asyncio.Lock()
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def key(self) -> str:
        return credential_key(self.vendor, self.scope)

    def _client_credentials(self) -> dict[str, str]:
        creds = {}
        if self._client_id:
            creds["client_id"] = self._client_id
        if self._client_secret:
            creds["client_secret"] = self._client_secret
        return creds

    async def _load(self) -> TokenRecord | None:
        if self._cached is None:
            self._cached = await self._store.get(self.key)
        return self._cached

    async def _save(self, record: TokenRecord) -> None:
        self._cached = record
        await self._store.set(self.key, record)

    def _is_fresh(self, record: TokenRecord | None) -> bool:
        return (
            record is not None
            and record.is_active
            and not record.expires_within(self.refresh_margin, self._clock())
        )

    async def store_token(self, record: TokenRecord) -> None:
        """Persist a token obtained outside the manager."""
        await self._save(record.model_copy(update={"tenancy": self.scope}))
        self._audit.record(
            AuditCategory.AUTHENTICATION, "token_stored", AuditOutcome.SUCCESS,
            vendor=self.vendor,
        )

    async def has_token(self) -> bool:
        record = await self._load()
        return record is not None and record.is_active

    async def get_valid_token(self) -> str:
        """Return an access token valid for at least the refresh margin.

        Returns:
            Access token string

        Raises:
            AuthenticationRequired: If no active token exists
            ReauthenticationRequired: If the refresh token was rejected
            NetworkError: If the token endpoint is unreachable
        """
        record = await self._load()
        if self._is_fresh(record):
            return record.access_token  # type: ignore[union-attr]

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited.
            record = await self._load()
            if self._is_fresh(record):
                return record.access_token  # type: ignore[union-attr]
            if record is None:
                raise AuthenticationRequired(
                    "No credentials; complete the OAuth flow", self.vendor
                )
            if not record.is_active:
                raise ReauthenticationRequired(
                    "Credentials were invalidated; sign in again", self.vendor
                )
            refreshed = await self._refresh(record)
            return refreshed.access_token

    async def mark_expired(self) -> None:
        """Force a refresh on the next call after the vendor rejected the token."""
        record = await self._load()
        if record is not None and record.is_active:
            self._cached = record.model_copy(update={"expires_at": self._clock()})
            logger.info(f"[{self.vendor}] Access token rejected, refresh scheduled")

    async def _refresh(self, record: TokenRecord) -> TokenRecord:
        if not record.refresh_token:
            await self._invalidate(record, "no refresh token")
            raise ReauthenticationRequired("No refresh token available", self.vendor)

        logger.info(f"[{self.vendor}] Refreshing access token")
        with self._audit.timed(f"{self.vendor}.token_refresh"):
            try:
                payload = await self._token_request(
                    {"grant_type": "refresh_token", "refresh_token": record.refresh_token}
                )
            except AuthenticationFailed as e:
                await self._invalidate(record, str(e))
                raise ReauthenticationRequired(
                    "Refresh token rejected; sign in again", self.vendor
                ) from e
            except Exception as e:
                self._audit.record(
                    AuditCategory.AUTHENTICATION, "token_refresh", AuditOutcome.FAILED,
                    vendor=self.vendor, error=e,
                )
                raise

        new_record = TokenRecord.from_oauth_response(
            self.vendor,
            payload,
            tenancy=self.scope,
            previous_refresh_token=record.refresh_token,
            now=self._clock(),
        ).model_copy(update={"created_at": record.created_at})
        await self._save(new_record)
        self._audit.record(
            AuditCategory.AUTHENTICATION, "token_refresh", AuditOutcome.SUCCESS,
            vendor=self.vendor, expires_at=new_record.expires_at.isoformat(),
        )
        return new_record

    async def _invalidate(self, record: TokenRecord, reason: str) -> None:
        record = record.model_copy()
        record.invalidate()
        await self._save(record)
        self._audit.record(
            AuditCategory.AUTHENTICATION, "token_refresh", AuditOutcome.FAILED,
            vendor=self.vendor, error=reason, reauthentication_required=True,
        )
        logger.warning(f"[{self.vendor}] Token invalidated: {reason}")

    async def authenticate_with_password(self, username: str, password: str) -> TokenRecord:
        """Exchange account credentials for a token (password grant).

        Raises:
            AuthenticationFailed: If the vendor rejects the credentials
        """
        return await self._acquire(
            "password_login",
            {"grant_type": "password", "username": username, "password": password},
        )

    async def exchange_authorization_code(
        self, code: str, redirect_uri: str
    ) -> TokenRecord:
        """Complete an authorization-code flow.

        Raises:
            AuthenticationFailed: If the vendor rejects the code
        """
        return await self._acquire(
            "authorization_code",
            {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri},
        )

    async def _acquire(self, action: str, form: dict[str, str]) -> TokenRecord:
        try:
            payload = await self._token_request(form)
        except Exception as e:
            self._audit.record(
                AuditCategory.AUTHENTICATION, action, AuditOutcome.FAILED,
                vendor=self.vendor, error=e,
            )
            raise
        record = TokenRecord.from_oauth_response(
            self.vendor, payload, tenancy=self.scope, now=self._clock()
        )
        await self._save(record)
        self._audit.record(
            AuditCategory.AUTHENTICATION, action, AuditOutcome.SUCCESS, vendor=self.vendor
        )
        return record

    async def revoke(self) -> None:
        """Soft-delete stored credentials."""
        record = await self._load()
        if record is None:
            return
        record = record.model_copy()
        record.invalidate()
        await self._save(record)
        self._audit.record(
            AuditCategory.AUTHENTICATION, "revoke", AuditOutcome.SUCCESS, vendor=self.vendor
        )
        logger.info(f"[{self.vendor}] Credentials revoked")

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        try:
            response = await self._client.post(
                self.token_url, data={**form, **self._client_credentials()}
            )
        except httpx.TransportError as e:
            raise NetworkError(f"Token endpoint unreachable: {e}", self.vendor) from e

        if response.status_code in (400, 401, 403):
            raise AuthenticationFailed(
                f"Token request rejected (HTTP {response.status_code})", self.vendor
            )
        if response.status_code >= 500:
            raise ServerError(response.status_code, self.vendor)
        try:
            payload = response.json()
        except ValueError as e:
            raise MappingError("Token response is not JSON", self.vendor) from e
        if not isinstance(payload, dict) or "access_token" not in payload:
            raise MappingError("Token response missing access_token", self.vendor)
        return payload

    async def close(self) -> None:
        await self._client.aclose()
