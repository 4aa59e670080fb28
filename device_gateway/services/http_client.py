"""Authenticated HTTP client shared by vendor adapters.

Maps transport failures and HTTP status codes onto the gateway error
taxonomy and runs every request through the retry engine.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from device_gateway.core.errors import (
    CommandTimeout,
    MappingError,
    NetworkError,
    TokenExpired,
    map_status_error,
)
from device_gateway.services.retry import RetryEngine

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str]]


class VendorHttpClient:
    """JSON-over-HTTP client for one vendor API.

    Attributes:
        vendor: Vendor name used in error messages
        retry: Retry engine wrapping each request
    """

    def __init__(
        self,
        vendor: str,
        base_url: str,
        retry: RetryEngine,
        token_provider: TokenProvider | None = None,
        on_unauthorized: Callable[[], Awaitable[None]] | None = None,
        token_header: str = "Authorization",
        token_prefix: str = "Bearer ",
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.vendor = vendor
        self.retry = retry
        self._token_provider = token_provider
        self._on_unauthorized = on_unauthorized
        self._token_header = token_header
        self._token_prefix = token_prefix
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json", **(headers or {})},
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        resource: str | None = None,
    ) -> Any:
        """Send a request with retries and return the decoded JSON body.

        Args:
            method: HTTP method
            path: Path relative to the vendor base URL
            json: Optional JSON body
            params: Optional query parameters
            resource: Device id reported in not-found errors

        Returns:
            Decoded JSON, or None for an empty body

        Raises:
            DeviceGatewayError: Mapped error after retries are exhausted
        """
        return await self.retry.run(self._send, method, path, json, params, resource)

    async def get(self, path: str, resource: str | None = None) -> Any:
        return await self.request("GET", path, resource=resource)

    async def post(self, path: str, json: Any = None, resource: str | None = None) -> Any:
        return await self.request("POST", path, json=json, resource=resource)

    async def put(self, path: str, json: Any = None, resource: str | None = None) -> Any:
        return await self.request("PUT", path, json=json, resource=resource)

    async def _send(
        self,
        method: str,
        path: str,
        json: Any,
        params: dict[str, Any] | None,
        resource: str | None,
    ) -> Any:
        headers: dict[str, str] = {}
        if self._token_provider is not None:
            token = await self._token_provider()
            headers[self._token_header] = f"{self._token_prefix}{token}"

        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.TimeoutException as e:
            raise CommandTimeout(f"{method} {path} timed out", self.vendor) from e
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {e}", self.vendor) from e

        error = map_status_error(
            response.status_code,
            vendor=self.vendor,
            resource=resource,
            retry_after=response.headers.get("Retry-After"),
        )
        if error is not None:
            logger.warning(
                f"[{self.vendor}] {method} {path} -> HTTP {response.status_code}"
            )
            if isinstance(error, TokenExpired) and self._on_unauthorized is not None:
                await self._on_unauthorized()
            raise error

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise MappingError(f"Invalid JSON from {method} {path}", self.vendor) from e

    async def close(self) -> None:
        await self._client.aclose()
