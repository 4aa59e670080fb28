"""SmartThings payload parsing and command translation."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from device_gateway.core.errors import CommandNotSupported, MappingError
from device_gateway.core.models.command import (
    DeviceCommand,
    ExecuteCustom,
    LockCommand,
    SetBrightness,
    SetColor,
    SetCoolingSetpoint,
    SetFanMode,
    SetHeatingSetpoint,
    SetMode,
    SetSwitch,
    SetTemperature,
    TurnOff,
    TurnOn,
    UnlockCommand,
)
from device_gateway.core.models.device import (
    DeviceEnvelope,
    ThermostatDevice,
    ThermostatMode,
)
from device_gateway.services.normalization import (
    VendorDeviceRecord,
    expect_list,
    expect_object,
    parse_flag,
    parse_timestamp,
)

VENDOR = "smartthings"
MAIN_COMPONENT = "main"
FAILED_RESULTS = frozenset({"FAILED", "REJECTED"})

MODE_VALUES = {
    ThermostatMode.OFF: "off",
    ThermostatMode.HEAT: "heat",
    ThermostatMode.COOL: "cool",
    ThermostatMode.AUTO: "auto",
    ThermostatMode.FAN_ONLY: "fanonly",
}


def component_capabilities(item: dict[str, Any]) -> list[str]:
    """Capability ids of the main component (or the first one).

    Raises:
        MappingError: If components or their capabilities are malformed
    """
    components = expect_list(item.get("components"), "'components'", VENDOR)
    for component in components:
        expect_object(component, "component entry", VENDOR)
    main = next(
        (c for c in components if c.get("id") == MAIN_COMPONENT),
        components[0] if components else {},
    )
    capabilities = expect_list(main.get("capabilities"), "component capabilities", VENDOR)
    return [c["id"] for c in capabilities if isinstance(c, dict) and "id" in c]


def status_attributes(status: Any) -> dict[str, dict[str, Any]]:
    """Flatten ``components.main.<capability>.<attribute>.value``.

    Raises:
        MappingError: If the status body or its main component is not an object
    """
    if status is None:
        return {}
    status = expect_object(status, "/status response", VENDOR)
    components = expect_object(
        status.get("components"), "status components", VENDOR, optional=True
    )
    main = expect_object(
        components.get(MAIN_COMPONENT), "main component status", VENDOR, optional=True
    )
    attributes: dict[str, dict[str, Any]] = {}
    for capability, values in main.items():
        if not isinstance(values, dict):
            continue
        attributes[capability] = {
            name: (entry.get("value") if isinstance(entry, dict) else entry)
            for name, entry in values.items()
        }
    return attributes


def parse_device(
    item: Any,
    status: Any = None,
    health: Any = None,
) -> VendorDeviceRecord:
    """Build a vendor record from /devices, /status and /health payloads.

    A health body that is not an object is ignored; the device is then
    assumed reachable.

    Raises:
        MappingError: If the item is not an object, lacks deviceId, or
            the status body is malformed
    """
    if not isinstance(item, dict) or not item.get("deviceId"):
        raise MappingError("Device item missing deviceId", VENDOR)
    ocf = expect_object(item.get("ocf"), "'ocf'", VENDOR, optional=True)
    if not isinstance(health, dict):
        health = {}
    health_state = health.get("state")
    metadata = {
        k: str(v)
        for k, v in {
            "location_id": item.get("locationId"),
            "device_type_name": item.get("deviceTypeName"),
            "health_state": health_state,
        }.items()
        if v is not None
    }
    return VendorDeviceRecord(
        vendor=VENDOR,
        device_id=item["deviceId"],
        name=item.get("label") or item.get("name") or "",
        capabilities=component_capabilities(item),
        attributes=status_attributes(status),
        device_type=ocf.get("ocfDeviceType") or item.get("deviceTypeName"),
        location=item.get("roomName") or item.get("roomId"),
        manufacturer=item.get("manufacturerName") or ocf.get("manufacturerName"),
        model=ocf.get("modelNumber") or item.get("deviceTypeName"),
        firmware_version=ocf.get("firmwareVersion") or ocf.get("fv"),
        online=health_state is None or health_state == "ONLINE",
        last_seen=parse_timestamp(health.get("lastUpdatedDate")),
        metadata=metadata,
    )


def translate_command(
    command: DeviceCommand, device: DeviceEnvelope
) -> tuple[str, str, list[Any]]:
    """Map a command to a (capability, command, arguments) triple.

    Args:
        command: Command to send
        device: Current device state (selects the setpoint for SetTemperature)

    Returns:
        Capability id, command name and argument list

    Raises:
        CommandNotSupported: If there is no SmartThings equivalent
    """
    if isinstance(command, LockCommand):
        return "lock", "lock", []
    if isinstance(command, UnlockCommand):
        return "lock", "unlock", []
    if isinstance(command, TurnOn):
        return "switch", "on", []
    if isinstance(command, TurnOff):
        return "switch", "off", []
    if isinstance(command, SetSwitch):
        return "switch", "on" if command.on else "off", []
    if isinstance(command, SetBrightness):
        return "switchLevel", "setLevel", [command.level]
    if isinstance(command, SetColor):
        color = command.color
        return "colorControl", "setColor", [
            {"hue": round(color.hue / 3.6, 1), "saturation": round(color.saturation, 1)}
        ]
    if isinstance(command, SetMode):
        return "thermostatMode", "setThermostatMode", [MODE_VALUES[command.mode]]
    if isinstance(command, SetFanMode):
        return "thermostatFanMode", "setThermostatFanMode", [command.mode.value]
    if isinstance(command, SetHeatingSetpoint):
        return "thermostatHeatingSetpoint", "setHeatingSetpoint", [command.value]
    if isinstance(command, SetCoolingSetpoint):
        return "thermostatCoolingSetpoint", "setCoolingSetpoint", [command.value]
    if isinstance(command, SetTemperature):
        if isinstance(device, ThermostatDevice) and device.mode == ThermostatMode.COOL:
            return "thermostatCoolingSetpoint", "setCoolingSetpoint", [command.value]
        return "thermostatHeatingSetpoint", "setHeatingSetpoint", [command.value]
    if isinstance(command, ExecuteCustom):
        capability = command.params.get("capability")
        if not capability:
            raise CommandNotSupported(command.type, device.id, VENDOR)
        return capability, command.name, list(command.params.get("arguments", []))
    raise CommandNotSupported(command.type, device.id, VENDOR)


def command_body(capability: str, name: str, arguments: list[Any]) -> dict[str, Any]:
    return {
        "commands": [
            {
                "component": MAIN_COMPONENT,
                "capability": capability,
                "command": name,
                "arguments": arguments,
            }
        ]
    }


class Scene(BaseModel):
    """A SmartThings scene.

    Attributes:
        id: Scene id used to execute it
        name: Display name
        location_id: Location the scene belongs to
        last_executed: When the scene last ran, if ever
        editable: Whether the token may modify the scene
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    location_id: str | None = None
    last_executed: datetime | None = None
    editable: bool = True


def parse_scene(item: Any) -> Scene:
    """Build a Scene from one /scenes item.

    Raises:
        MappingError: If the item is not an object or lacks sceneId
    """
    item = expect_object(item, "scene item", VENDOR)
    scene_id = item.get("sceneId")
    if not scene_id:
        raise MappingError("Scene item missing sceneId", VENDOR)
    return Scene(
        id=str(scene_id),
        name=str(item.get("sceneName") or ""),
        location_id=item.get("locationId"),
        last_executed=parse_timestamp(item.get("lastExecutedDate")),
        editable=parse_flag(item.get("editable"), True),
    )
