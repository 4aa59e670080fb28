"""Yale Home lock adapter.

Yale accounts sign in with a password grant; every request also carries
the partner API key in ``x-api-key``.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from device_gateway.adapters.base import AdapterContext, TokenAuthenticatedAdapter
from device_gateway.config.settings import VendorConfig
from device_gateway.core.errors import (
    CommandFailed,
    CommandNotSupported,
    InvalidDeviceId,
    MappingError,
)
from device_gateway.core.models.command import DeviceCommand, LockCommand, UnlockCommand
from device_gateway.core.models.device import UnifiedDevice
from device_gateway.core.models.token import TokenRecord
from device_gateway.services.command_effects import apply_command
from device_gateway.services.normalization import (
    VendorDeviceRecord,
    expect_object,
    parse_flag,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

VENDOR = "yale"
DEVICE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9]{8,32}$")
ACCEPTED_STATUSES = {"success", "pending"}
COMPLETED_STATUS = {"lock": "locked", "unlock": "unlocked"}


def parse_lock(item: dict[str, Any]) -> VendorDeviceRecord:
    """Build a vendor record from a /devices lock entry or a merged status.

    Raises:
        MappingError: If the entry has no deviceId or malformed metadata
    """
    if not isinstance(item, dict) or not item.get("deviceId"):
        raise MappingError("Lock entry missing deviceId", VENDOR)
    metadata = expect_object(
        item.get("deviceMetadata"), "'deviceMetadata'", VENDOR, optional=True
    )
    status = str(item.get("deviceStatus") or "")
    return VendorDeviceRecord(
        vendor=VENDOR,
        device_id=item["deviceId"],
        name=item.get("deviceName") or "",
        capabilities=["lock", "battery"],
        attributes={
            "lock": {"lock": status},
            "battery": {"battery": item.get("batteryLevel")},
        },
        device_type="lock",
        manufacturer="Yale",
        model=metadata.get("model"),
        firmware_version=metadata.get("firmwareVersion"),
        online=status.lower() != "offline",
        last_seen=parse_timestamp(metadata.get("lastUpdated")),
        remote_operation_enabled=parse_flag(metadata.get("remoteOperationEnabled"), True),
    )


class YaleAdapter(TokenAuthenticatedAdapter):
    """Adapter for Yale Home smart locks."""

    vendor_name = VENDOR

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._entries: dict[str, dict[str, Any]] = {}
        self._known: dict[str, UnifiedDevice] = {}

    @classmethod
    def create(cls, vendor: VendorConfig, context: AdapterContext) -> YaleAdapter:
        tokens = context.token_manager(vendor, vendor.token_endpoint())
        headers = {"x-api-key": vendor.api_key} if vendor.api_key else None
        http = context.http_client(vendor, tokens, headers=headers)
        return cls(tokens, http, context.normalization, scope=context.scope)

    async def login(self, username: str, password: str) -> TokenRecord:
        """Sign in with Yale account credentials.

        Raises:
            AuthenticationFailed: If Yale rejects the credentials
        """
        return await self.tokens.authenticate_with_password(username, password)

    def _validate_id(self, device_id: str) -> None:
        if not DEVICE_ID_PATTERN.match(device_id or ""):
            raise InvalidDeviceId(device_id, VENDOR)

    async def fetch_devices(self) -> list[UnifiedDevice]:
        payload = expect_object(await self.http.get("/devices"), "/devices response", VENDOR)
        locks = payload.get("locks")
        if not isinstance(locks, list):
            raise MappingError("/devices response has no 'locks' list", VENDOR)

        devices = []
        for item in locks:
            try:
                record = parse_lock(item)
            except MappingError as e:
                logger.warning(f"[{VENDOR}] Skipping lock entry: {e}")
                continue
            self._entries[record.device_id] = item
            devices.append(self._remember(record))
        logger.info(f"[{VENDOR}] Fetched {len(devices)} locks")
        return devices

    def _remember(self, record: VendorDeviceRecord) -> UnifiedDevice:
        device = self._normalize(record)
        self._known[device.id] = device
        return device

    async def get_device_state(self, device_id: str) -> UnifiedDevice:
        self._validate_id(device_id)
        status = await self.http.get(f"/locks/{device_id}/status", resource=device_id)
        if not isinstance(status, dict):
            raise MappingError(f"Status for {device_id} is not an object", VENDOR)
        entry = {**self._entries.get(device_id, {"deviceId": device_id}), **status}
        entry["deviceId"] = device_id
        self._entries[device_id] = entry
        return self._remember(parse_lock(entry)).snapshot()

    async def execute_command(
        self, device_id: str, command: DeviceCommand
    ) -> UnifiedDevice:
        self._validate_id(device_id)
        if not isinstance(command, (LockCommand, UnlockCommand)):
            raise CommandNotSupported(command.type, device_id, VENDOR)
        device = self._known.get(device_id) or await self.get_device_state(device_id)

        response = await self.http.post(
            f"/locks/{device_id}/operate",
            json={"command": command.type},
            resource=device_id,
        )
        body = expect_object(response, "/operate response", VENDOR, optional=True)
        status = str(body.get("status", "")).lower()
        if status not in ACCEPTED_STATUSES | {COMPLETED_STATUS[command.type]}:
            message = body.get("message") or status or "no status"
            raise CommandFailed(f"Yale {command.type} failed: {message}", VENDOR)
        logger.info(f"[{VENDOR}] {command.type} accepted for {device_id} ({status})")

        expected = apply_command(device, command)
        self._known[device_id] = expected
        return expected.snapshot()
