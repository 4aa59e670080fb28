"""SmartThings cloud adapter.

Lists devices from /devices, reads state from /devices/{id}/status and
reachability from /devices/{id}/health, sends capability commands
to /devices/{id}/commands, and lists and runs scenes under /scenes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from device_gateway.adapters.base import AdapterContext, TokenAuthenticatedAdapter
from device_gateway.adapters.smartthings.translation import (
    FAILED_RESULTS,
    VENDOR,
    Scene,
    command_body,
    parse_device,
    parse_scene,
    translate_command,
)
from device_gateway.config.settings import VendorConfig
from device_gateway.core.errors import (
    CommandFailed,
    CommandNotSupported,
    DeviceGatewayError,
    DeviceNotFound,
    MappingError,
)
from device_gateway.core.models.command import DeviceCommand
from device_gateway.core.models.device import UnifiedDevice
from device_gateway.services.command_effects import apply_command
from device_gateway.services.normalization import expect_list, expect_object

logger = logging.getLogger(__name__)


class SmartThingsAdapter(TokenAuthenticatedAdapter):
    """Adapter for the SmartThings REST API (OAuth bearer tokens)."""

    vendor_name = VENDOR

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._capabilities: dict[str, set[str]] = {}
        self._known: dict[str, UnifiedDevice] = {}

    @classmethod
    def create(cls, vendor: VendorConfig, context: AdapterContext) -> SmartThingsAdapter:
        tokens = context.token_manager(vendor, vendor.token_endpoint())
        http = context.http_client(vendor, tokens)
        return cls(tokens, http, context.normalization, scope=context.scope)

    async def fetch_devices(self) -> list[UnifiedDevice]:
        payload = expect_object(await self.http.get("/devices"), "/devices response", VENDOR)
        items = payload.get("items")
        if not isinstance(items, list):
            raise MappingError("/devices response has no 'items' list", VENDOR)

        results = await asyncio.gather(*(self._load(item) for item in items))
        devices = [device for device in results if device is not None]
        logger.info(f"[{VENDOR}] Fetched {len(devices)} of {len(items)} devices")
        return devices

    async def _load(self, item: dict[str, Any]) -> UnifiedDevice | None:
        device_id = item.get("deviceId") if isinstance(item, dict) else None
        if not device_id:
            logger.warning(f"[{VENDOR}] Skipping device item without deviceId")
            return None
        try:
            status = await self.http.get(f"/devices/{device_id}/status", resource=device_id)
            health = await self._health(device_id)
            return self._remember(parse_device(item, status, health))
        except (MappingError, DeviceNotFound) as e:
            logger.warning(f"[{VENDOR}] Skipping device {device_id!r}: {e}")
            return None

    async def _health(self, device_id: str) -> dict[str, Any] | None:
        try:
            return await self.http.get(f"/devices/{device_id}/health", resource=device_id)
        except DeviceGatewayError as e:
            logger.debug(f"[{VENDOR}] Health unavailable for {device_id}: {e}")
            return None

    def _remember(self, record) -> UnifiedDevice:
        device = self._normalize(record)
        self._capabilities[device.id] = set(record.capabilities)
        self._known[device.id] = device
        return device

    async def get_device_state(self, device_id: str) -> UnifiedDevice:
        item = await self.http.get(f"/devices/{device_id}", resource=device_id)
        status = await self.http.get(f"/devices/{device_id}/status", resource=device_id)
        health = await self._health(device_id)
        return self._remember(parse_device(item, status, health)).snapshot()

    async def execute_command(
        self, device_id: str, command: DeviceCommand
    ) -> UnifiedDevice:
        device = self._known.get(device_id) or await self.get_device_state(device_id)
        capability, name, arguments = translate_command(command, device)
        supported = self._capabilities.get(device_id)
        if supported is not None and capability not in supported:
            raise CommandNotSupported(command.type, device_id, VENDOR)

        response = await self.http.post(
            f"/devices/{device_id}/commands",
            json=command_body(capability, name, arguments),
            resource=device_id,
        )
        body = expect_object(response, "/commands response", VENDOR, optional=True)
        for result in expect_list(body.get("results"), "command results", VENDOR):
            result = expect_object(result, "command result", VENDOR)
            if str(result.get("status", "")).upper() in FAILED_RESULTS:
                raise CommandFailed(
                    f"{capability}.{name} rejected for device {device_id}", VENDOR
                )
        logger.info(f"[{VENDOR}] Sent {capability}.{name} to {device_id}")

        expected = apply_command(device, command)
        self._known[device_id] = expected
        return expected.snapshot()

    async def list_scenes(self, location_id: str | None = None) -> list[Scene]:
        """List scenes visible to the token, optionally for one location.

        Raises:
            MappingError: If the /scenes body is malformed
        """
        params = {"locationId": location_id} if location_id else None
        response = await self.http.request("GET", "/scenes", params=params)
        payload = expect_object(response, "/scenes response", VENDOR)
        scenes = []
        for item in expect_list(payload.get("items"), "'items'", VENDOR):
            try:
                scenes.append(parse_scene(item))
            except MappingError as e:
                logger.warning(f"[{VENDOR}] Skipping scene: {e}")
        logger.info(f"[{VENDOR}] Listed {len(scenes)} scenes")
        return scenes

    async def execute_scene(self, scene_id: str) -> None:
        """Run a scene.

        Device state changed by the scene arrives through webhooks or the
        next refresh; nothing is applied locally.

        Raises:
            DeviceNotFound: If the scene does not exist
            CommandFailed: If SmartThings reports a non-success status
        """
        response = await self.http.post(f"/scenes/{scene_id}/execute", resource=scene_id)
        body = expect_object(response, "/execute response", VENDOR, optional=True)
        status = str(body.get("status", "success")).lower()
        if status != "success":
            raise CommandFailed(f"Scene {scene_id} returned status {status!r}", VENDOR)
        logger.info(f"[{VENDOR}] Executed scene {scene_id}")
