"""August lock adapter.

August sends the access token in ``x-august-access-token`` without a
scheme prefix. Lock details include the recent operation history, which
is imported as access records.
"""

from __future__ import annotations

import logging
from typing import Any

from device_gateway.adapters.base import AdapterContext, TokenAuthenticatedAdapter
from device_gateway.config.settings import VendorConfig
from device_gateway.core.errors import CommandFailed, CommandNotSupported, MappingError
from device_gateway.core.models.access import DeviceOperation
from device_gateway.core.models.command import DeviceCommand, LockCommand, UnlockCommand
from device_gateway.core.models.device import AccessRecord, LockState, UnifiedDevice
from device_gateway.services.command_effects import apply_command
from device_gateway.services.normalization import (
    VendorDeviceRecord,
    expect_object,
    parse_flag,
    parse_lock_state,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

VENDOR = "august"
HISTORY_OPERATIONS = {"lock": DeviceOperation.LOCK, "unlock": DeviceOperation.UNLOCK}


def parse_history(entries: Any) -> list[AccessRecord]:
    """Convert August history entries; unknown or malformed entries are skipped."""
    if not isinstance(entries, list):
        return []
    records = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        operation = HISTORY_OPERATIONS.get(str(entry.get("action", "")).lower())
        timestamp = parse_timestamp(entry.get("timestamp"))
        if operation is None or timestamp is None:
            continue
        success = str(entry.get("result", "")).lower() == "success"
        records.append(
            AccessRecord(
                timestamp=timestamp,
                operation=operation,
                actor_id=str(entry.get("userId") or "unknown"),
                success=success,
                failure_reason=None if success else (entry.get("error") or "failed"),
            )
        )
    return sorted(records, key=lambda r: r.timestamp)


def parse_lock(item: dict[str, Any], lock_id: str | None = None) -> VendorDeviceRecord:
    """Build a vendor record from a /locks entry or lock detail.

    Raises:
        MappingError: If no lock id is available or properties are malformed
    """
    if not isinstance(item, dict):
        raise MappingError("Lock entry is not an object", VENDOR)
    lock_id = item.get("lockID") or lock_id
    if not lock_id:
        raise MappingError("Lock entry missing lockID", VENDOR)
    properties = expect_object(
        item.get("properties"), "'properties'", VENDOR, optional=True
    )
    state = str(item.get("currentState") or "")
    return VendorDeviceRecord(
        vendor=VENDOR,
        device_id=lock_id,
        name=item.get("LockName") or "",
        capabilities=["lock", "battery"],
        attributes={
            "lock": {"lock": state},
            "battery": {"battery": item.get("batteryPercentage")},
        },
        device_type="lock",
        manufacturer="August",
        model=item.get("model") or "Smart Lock",
        firmware_version=item.get("firmwareVersion"),
        online=state.lower() != "offline",
        last_seen=parse_timestamp(properties.get("lastStateChange")),
        remote_operation_enabled=parse_flag(properties.get("supportsRemoteOperation"), True),
        access_history=parse_history(item.get("history")),
    )


class AugustAdapter(TokenAuthenticatedAdapter):
    """Adapter for August smart locks."""

    vendor_name = VENDOR

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._known: dict[str, UnifiedDevice] = {}

    @classmethod
    def create(cls, vendor: VendorConfig, context: AdapterContext) -> AugustAdapter:
        tokens = context.token_manager(vendor, vendor.token_endpoint())
        headers = {"x-august-api-key": vendor.api_key} if vendor.api_key else None
        http = context.http_client(
            vendor,
            tokens,
            headers=headers,
            token_header="x-august-access-token",
            token_prefix="",
        )
        return cls(tokens, http, context.normalization, scope=context.scope)

    async def fetch_devices(self) -> list[UnifiedDevice]:
        payload = await self.http.get("/locks")
        if isinstance(payload, dict):
            # Keyed by lock id; non-object values fail in parse_lock and are skipped
            items = [
                {"lockID": key, **value} if isinstance(value, dict) else value
                for key, value in payload.items()
            ]
        elif isinstance(payload, list):
            items = payload
        else:
            raise MappingError("/locks response is not a list", VENDOR)

        devices = []
        for item in items:
            try:
                devices.append(self._remember(parse_lock(item)))
            except MappingError as e:
                logger.warning(f"[{VENDOR}] Skipping lock entry: {e}")
        logger.info(f"[{VENDOR}] Fetched {len(devices)} locks")
        return devices

    def _remember(self, record: VendorDeviceRecord) -> UnifiedDevice:
        device = self._normalize(record)
        self._known[device.id] = device
        return device

    async def get_device_state(self, device_id: str) -> UnifiedDevice:
        detail = await self.http.get(f"/locks/{device_id}", resource=device_id)
        return self._remember(parse_lock(detail, lock_id=device_id)).snapshot()

    async def execute_command(
        self, device_id: str, command: DeviceCommand
    ) -> UnifiedDevice:
        if not isinstance(command, (LockCommand, UnlockCommand)):
            raise CommandNotSupported(command.type, device_id, VENDOR)
        device = self._known.get(device_id) or await self.get_device_state(device_id)

        response = await self.http.put(
            f"/locks/{device_id}/{command.type}", resource=device_id
        )
        body = expect_object(response, "lock operation response", VENDOR, optional=True)
        status = body.get("status")
        reported = parse_lock_state(status)
        expected_state = (
            LockState.LOCKED if isinstance(command, LockCommand) else LockState.UNLOCKED
        )
        if reported != expected_state:
            raise CommandFailed(
                f"August {command.type} returned status {status!r}", VENDOR
            )
        logger.info(f"[{VENDOR}] {command.type} confirmed for {device_id}")

        expected = apply_command(device, command)
        self._known[device_id] = expected
        return expected.snapshot()
