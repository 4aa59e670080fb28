"""Google Nest thermostat adapter (Smart Device Management API).

Devices live under ``enterprises/{project_id}/devices`` and expose their
state as traits. SDM reports and accepts temperatures in Celsius; the
gateway works in Fahrenheit, so values are converted at this boundary.
Commands go to ``{device}:executeCommand``.
"""

from __future__ import annotations

import logging
from typing import Any

from device_gateway.adapters.base import AdapterContext, TokenAuthenticatedAdapter
from device_gateway.config.settings import VendorConfig
from device_gateway.core.errors import (
    AuthenticationRequired,
    CommandNotSupported,
    MappingError,
)
from device_gateway.core.models.command import (
    DeviceCommand,
    SetCoolingSetpoint,
    SetFanMode,
    SetHeatingSetpoint,
    SetMode,
    SetTemperature,
)
from device_gateway.core.models.device import (
    FanMode,
    ThermostatDevice,
    ThermostatMode,
    UnifiedDevice,
)
from device_gateway.services.command_effects import apply_command
from device_gateway.services.normalization import (
    COOLING_SETPOINT,
    HEATING_SETPOINT,
    HUMIDITY,
    TEMPERATURE,
    THERMOSTAT_FAN_MODE,
    THERMOSTAT_MODE,
    THERMOSTAT_OPERATING_STATE,
    VendorDeviceRecord,
    expect_list,
    expect_object,
)

logger = logging.getLogger(__name__)

VENDOR = "nest"
TRAIT = "sdm.devices.traits."
COMMAND = "sdm.devices.commands."

# Setpoint range Nest thermostats accept, in Fahrenheit
MIN_SETPOINT_F = 50.0
MAX_SETPOINT_F = 90.0
FAN_TIMER_DURATION = "3600s"

MODE_VALUES = {
    ThermostatMode.OFF: "OFF",
    ThermostatMode.HEAT: "HEAT",
    ThermostatMode.COOL: "COOL",
    ThermostatMode.AUTO: "HEATCOOL",
}


def to_fahrenheit(celsius: Any) -> float | None:
    if isinstance(celsius, bool) or not isinstance(celsius, (int, float)):
        return None
    return round(celsius * 9.0 / 5.0 + 32.0, 1)


def to_celsius(fahrenheit: float) -> float:
    """Convert Fahrenheit to Celsius, rounded to the SDM API's precision.

    Examples:
        >>> to_celsius(72)
        22.22
    """
    return round((fahrenheit - 32.0) * 5.0 / 9.0, 2)


def _trait(traits: dict[str, Any], name: str) -> dict[str, Any] | None:
    value = traits.get(TRAIT + name)
    if value is None:
        return None
    return expect_object(value, f"trait {name}", VENDOR)


def device_id_from_name(name: str) -> str:
    """Last path segment of ``enterprises/{project}/devices/{id}``."""
    return name.rstrip("/").rsplit("/", 1)[-1]


def parse_device(item: Any) -> VendorDeviceRecord:
    """Build a vendor record from one SDM device.

    Raises:
        MappingError: If the device is not an object, has no name, or
            has malformed traits
    """
    item = expect_object(item, "SDM device", VENDOR)
    name = item.get("name")
    if not isinstance(name, str) or not name:
        raise MappingError("SDM device missing name", VENDOR)
    traits = expect_object(item.get("traits"), "'traits'", VENDOR, optional=True)

    capabilities: list[str] = []
    attributes: dict[str, dict[str, Any]] = {}

    mode = _trait(traits, "ThermostatMode")
    if mode is not None:
        capabilities.append(THERMOSTAT_MODE)
        attributes[THERMOSTAT_MODE] = {"thermostatMode": mode.get("mode")}

    temperature = _trait(traits, "Temperature")
    if temperature is not None:
        capabilities.append(TEMPERATURE)
        attributes[TEMPERATURE] = {
            "temperature": to_fahrenheit(temperature.get("ambientTemperatureCelsius"))
        }

    setpoint = _trait(traits, "ThermostatTemperatureSetpoint")
    if setpoint is not None:
        capabilities.extend([HEATING_SETPOINT, COOLING_SETPOINT])
        attributes[HEATING_SETPOINT] = {
            "heatingSetpoint": to_fahrenheit(setpoint.get("heatCelsius"))
        }
        attributes[COOLING_SETPOINT] = {
            "coolingSetpoint": to_fahrenheit(setpoint.get("coolCelsius"))
        }

    humidity = _trait(traits, "Humidity")
    if humidity is not None:
        capabilities.append(HUMIDITY)
        attributes[HUMIDITY] = {"humidity": humidity.get("ambientHumidityPercent")}

    fan = _trait(traits, "Fan")
    if fan is not None:
        capabilities.append(THERMOSTAT_FAN_MODE)
        timer_on = str(fan.get("timerMode", "")).upper() == "ON"
        attributes[THERMOSTAT_FAN_MODE] = {
            "thermostatFanMode": "on" if timer_on else "auto"
        }

    hvac = _trait(traits, "ThermostatHvac")
    if hvac is not None:
        capabilities.append(THERMOSTAT_OPERATING_STATE)
        attributes[THERMOSTAT_OPERATING_STATE] = {
            "thermostatOperatingState": str(hvac.get("status", "")).lower()
        }

    info = _trait(traits, "Info") or {}
    connectivity = _trait(traits, "Connectivity") or {}
    relations = expect_list(item.get("parentRelations"), "'parentRelations'", VENDOR)
    rooms = [r.get("displayName") for r in relations if isinstance(r, dict)]
    room = next((r for r in rooms if r), None)
    return VendorDeviceRecord(
        vendor=VENDOR,
        device_id=device_id_from_name(name),
        name=str(info.get("customName") or room or ""),
        capabilities=capabilities,
        attributes=attributes,
        device_type=item.get("type"),
        location=room,
        manufacturer="Google",
        model="Nest Thermostat" if mode is not None else None,
        online=str(connectivity.get("status", "ONLINE")).upper() == "ONLINE",
        metadata={
            "sdm_name": name,
            "min_temperature": str(MIN_SETPOINT_F),
            "max_temperature": str(MAX_SETPOINT_F),
        },
    )


def translate_command(
    command: DeviceCommand, device: ThermostatDevice
) -> tuple[str, dict[str, Any]]:
    """Map a command to an SDM (command, params) pair.

    Setpoint changes while the thermostat is in HEATCOOL mode use
    SetRange, which needs both setpoints.

    Raises:
        CommandNotSupported: If SDM has no equivalent for the command in
            the device's current mode
    """
    if isinstance(command, SetMode):
        if command.mode not in MODE_VALUES:
            raise CommandNotSupported(command.type, device.id, VENDOR)
        return COMMAND + "ThermostatMode.SetMode", {"mode": MODE_VALUES[command.mode]}

    if isinstance(command, SetFanMode):
        if command.mode == FanMode.ON:
            return COMMAND + "Fan.SetTimer", {
                "timerMode": "ON",
                "duration": FAN_TIMER_DURATION,
            }
        if command.mode == FanMode.AUTO:
            return COMMAND + "Fan.SetTimer", {"timerMode": "OFF"}
        raise CommandNotSupported(command.type, device.id, VENDOR)

    if isinstance(command, SetTemperature):
        if device.mode == ThermostatMode.COOL:
            command = SetCoolingSetpoint(value=command.value)
        elif device.mode in (ThermostatMode.HEAT, ThermostatMode.AUTO):
            command = SetHeatingSetpoint(value=command.value)
        else:
            raise CommandNotSupported(command.type, device.id, VENDOR)

    if isinstance(command, (SetHeatingSetpoint, SetCoolingSetpoint)):
        heating = isinstance(command, SetHeatingSetpoint)
        if device.mode == ThermostatMode.AUTO:
            heat = command.value if heating else device.heating_setpoint
            cool = device.cooling_setpoint if heating else command.value
            if heat is None or cool is None:
                raise CommandNotSupported(command.type, device.id, VENDOR)
            return COMMAND + "ThermostatTemperatureSetpoint.SetRange", {
                "heatCelsius": to_celsius(heat),
                "coolCelsius": to_celsius(cool),
            }
        if heating and device.mode == ThermostatMode.HEAT:
            return COMMAND + "ThermostatTemperatureSetpoint.SetHeat", {
                "heatCelsius": to_celsius(command.value)
            }
        if not heating and device.mode == ThermostatMode.COOL:
            return COMMAND + "ThermostatTemperatureSetpoint.SetCool", {
                "coolCelsius": to_celsius(command.value)
            }

    raise CommandNotSupported(command.type, device.id, VENDOR)


class NestAdapter(TokenAuthenticatedAdapter):
    """Adapter for Nest thermostats through Google Device Access."""

    vendor_name = VENDOR

    def __init__(self, *args, project_id: str | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.project_id = project_id
        self._known: dict[str, UnifiedDevice] = {}

    @classmethod
    def create(cls, vendor: VendorConfig, context: AdapterContext) -> NestAdapter:
        tokens = context.token_manager(vendor, vendor.token_endpoint())
        http = context.http_client(vendor, tokens)
        return cls(
            tokens,
            http,
            context.normalization,
            scope=context.scope,
            project_id=vendor.project_id,
        )

    @property
    def devices_path(self) -> str:
        if not self.project_id:
            raise AuthenticationRequired(
                "Device Access project id is not configured", VENDOR
            )
        return f"/enterprises/{self.project_id}/devices"

    async def fetch_devices(self) -> list[UnifiedDevice]:
        payload = expect_object(
            await self.http.get(self.devices_path), "device list", VENDOR
        )
        devices = []
        for item in expect_list(payload.get("devices"), "'devices'", VENDOR):
            try:
                devices.append(self._remember(parse_device(item)))
            except MappingError as e:
                logger.warning(f"[{VENDOR}] Skipping device: {e}")
        logger.info(f"[{VENDOR}] Fetched {len(devices)} devices")
        return devices

    def _remember(self, record: VendorDeviceRecord) -> UnifiedDevice:
        device = self._normalize(record)
        self._known[device.id] = device
        return device

    async def get_device_state(self, device_id: str) -> UnifiedDevice:
        item = await self.http.get(f"{self.devices_path}/{device_id}", resource=device_id)
        return self._remember(parse_device(item)).snapshot()

    async def execute_command(
        self, device_id: str, command: DeviceCommand
    ) -> UnifiedDevice:
        device = self._known.get(device_id) or await self.get_device_state(device_id)
        if not isinstance(device, ThermostatDevice):
            raise CommandNotSupported(command.type, device_id, VENDOR)
        name, params = translate_command(command, device)

        await self.http.post(
            f"{self.devices_path}/{device_id}:executeCommand",
            json={"command": name, "params": params},
            resource=device_id,
        )
        logger.info(f"[{VENDOR}] Sent {name.removeprefix(COMMAND)} to {device_id}")

        expected = apply_command(device, command)
        self._known[device_id] = expected
        return expected.snapshot()
