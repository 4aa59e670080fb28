"""Philips Hue light adapter.

Talks to the CLIP v2 light resource through the Hue remote API. Requests
carry the OAuth bearer token plus the bridge application key in
``hue-application-key``. Every CLIP response wraps its payload as
``{"errors": [...], "data": [...]}``; a non-empty ``errors`` list means
the request failed even when the HTTP status is 200.
"""

from __future__ import annotations

import logging
from typing import Any

from device_gateway.adapters.base import AdapterContext, TokenAuthenticatedAdapter
from device_gateway.adapters.hue.color import (
    color_to_xy,
    mirek_to_color,
    mirek_to_kelvin,
    xy_to_color,
)
from device_gateway.config.settings import VendorConfig
from device_gateway.core.errors import (
    CommandFailed,
    CommandNotSupported,
    DeviceNotFound,
    MappingError,
)
from device_gateway.core.models.command import (
    DeviceCommand,
    SetBrightness,
    SetColor,
    SetSwitch,
    TurnOff,
    TurnOn,
)
from device_gateway.core.models.device import LightColor, LightDevice, UnifiedDevice
from device_gateway.services.command_effects import apply_command
from device_gateway.services.normalization import (
    COLOR_CONTROL,
    COLOR_TEMPERATURE,
    SWITCH,
    SWITCH_LEVEL,
    VendorDeviceRecord,
    expect_list,
    expect_object,
    parse_flag,
)

logger = logging.getLogger(__name__)

VENDOR = "hue"
LIGHT_PATH = "/clip/v2/resource/light"


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _section(item: dict[str, Any], key: str) -> dict[str, Any] | None:
    if item.get(key) is None:
        return None
    return expect_object(item[key], f"'{key}'", VENDOR)


def error_descriptions(body: dict[str, Any]) -> list[str]:
    """Descriptions from a CLIP ``errors`` list."""
    errors = expect_list(body.get("errors"), "'errors'", VENDOR)
    return [
        str(e.get("description") if isinstance(e, dict) else e) for e in errors
    ]


def resource_data(payload: Any, what: str) -> list[Any]:
    """Unwrap ``data`` from a CLIP GET response.

    Raises:
        MappingError: If the body is malformed or reports errors
    """
    body = expect_object(payload, what, VENDOR)
    errors = error_descriptions(body)
    if errors:
        raise MappingError(f"{what} reported errors: {'; '.join(errors)}", VENDOR)
    return expect_list(body.get("data"), "'data'", VENDOR)


def light_color(item: dict[str, Any], brightness: float) -> LightColor | None:
    """HSB color of a light.

    Taken from the color temperature when that is the active mode, from
    the xy coordinates otherwise.
    """
    temperature = _section(item, "color_temperature")
    if temperature is not None:
        mirek = _number(temperature.get("mirek"))
        if mirek and parse_flag(temperature.get("mirek_valid"), True):
            return mirek_to_color(mirek, brightness)
    color = _section(item, "color")
    if color is not None:
        xy = _section(color, "xy") or {}
        x, y = _number(xy.get("x")), _number(xy.get("y"))
        if x is not None and y is not None:
            return xy_to_color(x, y, brightness)
    return None


def parse_light(item: Any) -> VendorDeviceRecord:
    """Build a vendor record from one CLIP light resource.

    Raises:
        MappingError: If the resource is not an object, lacks an id or
            has malformed sections
    """
    item = expect_object(item, "light resource", VENDOR)
    light_id = item.get("id")
    if not light_id:
        raise MappingError("Light resource missing id", VENDOR)
    metadata = _section(item, "metadata") or {}
    power = _section(item, "on") or {}

    capabilities = [SWITCH]
    attributes: dict[str, dict[str, Any]] = {
        SWITCH: {"switch": "on" if parse_flag(power.get("on"), False) else "off"}
    }

    dimming = _section(item, "dimming")
    level = None
    if dimming is not None:
        capabilities.append(SWITCH_LEVEL)
        level = _number(dimming.get("brightness"))
        attributes[SWITCH_LEVEL] = {"level": None if level is None else round(level)}

    temperature = _section(item, "color_temperature")
    if temperature is not None:
        capabilities.append(COLOR_TEMPERATURE)
        mirek = _number(temperature.get("mirek"))
        if mirek:
            kelvin = round(mirek_to_kelvin(mirek))
            attributes[COLOR_TEMPERATURE] = {"colorTemperature": kelvin}
    if _section(item, "color") is not None:
        capabilities.append(COLOR_CONTROL)

    color = light_color(item, level if level is not None else 100.0)
    if color is not None:
        attributes[COLOR_CONTROL] = {
            "hue": round(color.hue / 3.6, 2),
            "saturation": round(color.saturation, 2),
        }

    archetype = metadata.get("archetype")
    return VendorDeviceRecord(
        vendor=VENDOR,
        device_id=str(light_id),
        name=str(metadata.get("name") or ""),
        capabilities=capabilities,
        attributes=attributes,
        device_type="light",
        manufacturer="Signify",
        metadata={"hue_archetype": str(archetype)} if archetype else {},
    )


def light_update(command: DeviceCommand, device: LightDevice) -> dict[str, Any]:
    """CLIP PUT body for a light command.

    Raises:
        CommandNotSupported: If the command has no Hue equivalent or the
            light lacks the needed feature
    """
    if isinstance(command, TurnOn):
        return {"on": {"on": True}}
    if isinstance(command, TurnOff):
        return {"on": {"on": False}}
    if isinstance(command, SetSwitch):
        return {"on": {"on": command.on}}
    if isinstance(command, SetBrightness) and device.supports_dimming:
        if command.level == 0:
            return {"on": {"on": False}}
        return {"on": {"on": True}, "dimming": {"brightness": command.level}}
    if isinstance(command, SetColor) and device.supports_color:
        x, y = color_to_xy(command.color)
        body: dict[str, Any] = {"on": {"on": True}, "color": {"xy": {"x": x, "y": y}}}
        if device.supports_dimming:
            body["dimming"] = {"brightness": round(command.brightness)}
        return body
    raise CommandNotSupported(command.type, device.id, VENDOR)


class HueAdapter(TokenAuthenticatedAdapter):
    """Adapter for Philips Hue lights via the remote CLIP v2 API."""

    vendor_name = VENDOR

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._known: dict[str, UnifiedDevice] = {}

    @classmethod
    def create(cls, vendor: VendorConfig, context: AdapterContext) -> HueAdapter:
        tokens = context.token_manager(vendor, vendor.token_endpoint())
        headers = {"hue-application-key": vendor.api_key} if vendor.api_key else None
        http = context.http_client(vendor, tokens, headers=headers)
        return cls(tokens, http, context.normalization, scope=context.scope)

    async def fetch_devices(self) -> list[UnifiedDevice]:
        data = resource_data(await self.http.get(LIGHT_PATH), "light list")
        devices = []
        for item in data:
            try:
                devices.append(self._remember(parse_light(item)))
            except MappingError as e:
                logger.warning(f"[{VENDOR}] Skipping light: {e}")
        logger.info(f"[{VENDOR}] Fetched {len(devices)} lights")
        return devices

    def _remember(self, record: VendorDeviceRecord) -> UnifiedDevice:
        device = self._normalize(record)
        self._known[device.id] = device
        return device

    async def get_device_state(self, device_id: str) -> UnifiedDevice:
        payload = await self.http.get(f"{LIGHT_PATH}/{device_id}", resource=device_id)
        data = resource_data(payload, f"light {device_id}")
        if not data:
            raise DeviceNotFound(device_id, VENDOR)
        return self._remember(parse_light(data[0])).snapshot()

    async def execute_command(
        self, device_id: str, command: DeviceCommand
    ) -> UnifiedDevice:
        device = self._known.get(device_id) or await self.get_device_state(device_id)
        if not isinstance(device, LightDevice):
            raise CommandNotSupported(command.type, device_id, VENDOR)
        body = light_update(command, device)

        response = await self.http.put(
            f"{LIGHT_PATH}/{device_id}", json=body, resource=device_id
        )
        errors = error_descriptions(
            expect_object(response, "light update response", VENDOR, optional=True)
        )
        if errors:
            raise CommandFailed(f"Hue {command.type} failed: {'; '.join(errors)}", VENDOR)
        logger.info(f"[{VENDOR}] Sent {command.type} to {device_id}")

        expected = apply_command(device, command)
        self._known[device_id] = expected
        return expected.snapshot()
