"""Shared plumbing for OAuth-backed vendor adapters."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx

from device_gateway.config.settings import GatewayConfig, VendorConfig
from device_gateway.core.models.access import TenancyScope
from device_gateway.core.models.token import TokenRecord
from device_gateway.security.credential_store import CredentialStore
from device_gateway.services.audit import AuditLogger
from device_gateway.services.http_client import VendorHttpClient
from device_gateway.services.normalization import NormalizationEngine, VendorDeviceRecord
from device_gateway.services.retry import RetryEngine
from device_gateway.services.token_manager import TokenManager

logger = logging.getLogger(__name__)


@dataclass
class AdapterContext:
    """Shared services handed to adapter factories.

    Attributes:
        config: Gateway tuning parameters
        store: Credential store for vendor tokens
        audit: Audit and metrics sink
        normalization: Device normalization engine
        transport: Optional httpx transport (tests inject MockTransport)
        scope: Tenancy scope of the vendor account, if bound to one
    """

    config: GatewayConfig
    store: CredentialStore
    audit: AuditLogger
    normalization: NormalizationEngine = field(default_factory=NormalizationEngine)
    transport: httpx.AsyncBaseTransport | None = None
    scope: TenancyScope | None = None

    def retry_engine(self) -> RetryEngine:
        return RetryEngine(
            max_retries=self.config.max_retries,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
            jitter=self.config.retry_jitter,
        )

    def token_manager(self, vendor: VendorConfig, token_url: str) -> TokenManager:
        return TokenManager(
            vendor=vendor.name,
            store=self.store,
            token_url=token_url,
            audit=self.audit,
            client_id=vendor.client_id,
            client_secret=vendor.client_secret,
            scope=self.scope,
            refresh_margin=self.config.token_refresh_margin,
            timeout=self.config.http_timeout,
            transport=self.transport,
        )

    def http_client(
        self,
        vendor: VendorConfig,
        tokens: TokenManager,
        headers: dict[str, str] | None = None,
        token_header: str = "Authorization",
        token_prefix: str = "Bearer ",
    ) -> VendorHttpClient:
        return VendorHttpClient(
            vendor=vendor.name,
            base_url=vendor.base_url,
            retry=self.retry_engine(),
            token_provider=tokens.get_valid_token,
            on_unauthorized=tokens.mark_expired,
            token_header=token_header,
            token_prefix=token_prefix,
            headers=headers,
            timeout=self.config.http_timeout,
            transport=self.transport,
        )


class TokenAuthenticatedAdapter:
    """Base for adapters whose requests carry an OAuth access token.

    Subclasses set `vendor_name` and implement fetch_devices(),
    get_device_state() and execute_command().
    """

    vendor_name: str = ""

    def __init__(
        self,
        tokens: TokenManager,
        http: VendorHttpClient,
        normalization: NormalizationEngine,
        scope: TenancyScope | None = None,
    ) -> None:
        self.tokens = tokens
        self.http = http
        self.normalization = normalization
        self.scope = scope

    @property
    def name(self) -> str:
        return self.vendor_name

    async def initialize(self, token: TokenRecord | None = None) -> None:
        if token is not None:
            await self.tokens.store_token(token)
        await self.tokens.get_valid_token()
        logger.info(f"[{self.name}] Adapter initialized")

    async def revoke_authentication(self) -> None:
        await self.tokens.revoke()

    async def close(self) -> None:
        await self.http.close()
        await self.tokens.close()

    def _normalize(self, record: VendorDeviceRecord):
        if self.scope is not None and record.property_id is None and record.unit_id is None:
            record.property_id = self.scope.property_id
            record.unit_id = self.scope.unit_id
        return self.normalization.normalize(record)
