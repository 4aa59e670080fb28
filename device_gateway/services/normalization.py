"""Normalization of vendor payloads into the unified device model.

Adapters parse their vendor JSON into a VendorDeviceRecord, using the
capability/attribute vocabulary below (SmartThings capability names),
and hand it to NormalizationEngine.

Device kind is taken from the vendor's explicit type field when it is
recognized, otherwise from an ordered capability rule table; the first
matching rule wins. Devices with non-standard capability sets can be
misclassified and fall back to GenericDevice; callers must handle that.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from device_gateway.core.errors import MappingError
from device_gateway.core.models.device import (
    DEFAULT_TEMPERATURE_RANGE,
    AccessRecord,
    DeviceEnvelope,
    DeviceKind,
    FanMode,
    GenericDevice,
    LightColor,
    LightDevice,
    LockDevice,
    LockState,
    SwitchDevice,
    SwitchType,
    ThermostatDevice,
    ThermostatMode,
    UnifiedDevice,
)

logger = logging.getLogger(__name__)

# Capability names
LOCK = "lock"
BATTERY = "battery"
SWITCH = "switch"
SWITCH_LEVEL = "switchLevel"
COLOR_CONTROL = "colorControl"
COLOR_TEMPERATURE = "colorTemperature"
TEMPERATURE = "temperatureMeasurement"
HUMIDITY = "relativeHumidityMeasurement"
THERMOSTAT_MODE = "thermostatMode"
THERMOSTAT_FAN_MODE = "thermostatFanMode"
THERMOSTAT_OPERATING_STATE = "thermostatOperatingState"
HEATING_SETPOINT = "thermostatHeatingSetpoint"
COOLING_SETPOINT = "thermostatCoolingSetpoint"
THERMOSTAT_SETPOINT = "thermostatSetpoint"
FAN_SPEED = "fanSpeed"
POWER_METER = "powerMeter"
OUTLET = "outlet"


@dataclass(frozen=True)
class CapabilityRule:
    """Maps a capability pattern to a device kind.

    A rule matches when every capability in `all_of` is present and, if
    `any_of` is non-empty, at least one of `any_of` is present.
    """

    kind: DeviceKind
    all_of: frozenset[str] = frozenset()
    any_of: frozenset[str] = frozenset()

    def matches(self, capabilities: set[str]) -> bool:
        if not self.all_of <= capabilities:
            return False
        return not self.any_of or bool(self.any_of & capabilities)


DEFAULT_RULES: tuple[CapabilityRule, ...] = (
    CapabilityRule(DeviceKind.LOCK, all_of=frozenset({LOCK})),
    CapabilityRule(
        DeviceKind.THERMOSTAT, any_of=frozenset({THERMOSTAT_MODE, TEMPERATURE})
    ),
    CapabilityRule(
        DeviceKind.LIGHT,
        all_of=frozenset({SWITCH}),
        any_of=frozenset({COLOR_CONTROL, SWITCH_LEVEL, COLOR_TEMPERATURE}),
    ),
    CapabilityRule(DeviceKind.SWITCH, all_of=frozenset({SWITCH})),
)

TYPE_ALIASES: dict[str, DeviceKind] = {
    "lock": DeviceKind.LOCK,
    "smartlock": DeviceKind.LOCK,
    "doorlock": DeviceKind.LOCK,
    "deadbolt": DeviceKind.LOCK,
    "thermostat": DeviceKind.THERMOSTAT,
    "hvac": DeviceKind.THERMOSTAT,
    "light": DeviceKind.LIGHT,
    "bulb": DeviceKind.LIGHT,
    "lamp": DeviceKind.LIGHT,
    "dimmer": DeviceKind.LIGHT,
    "switch": DeviceKind.SWITCH,
    "outlet": DeviceKind.SWITCH,
    "plug": DeviceKind.SWITCH,
    "smartplug": DeviceKind.SWITCH,
    "relay": DeviceKind.SWITCH,
}

SWITCH_TYPE_ALIASES: dict[str, SwitchType] = {
    "outlet": SwitchType.OUTLET,
    "plug": SwitchType.OUTLET,
    "smartplug": SwitchType.OUTLET,
    "fan": SwitchType.FAN,
    "light": SwitchType.LIGHT,
    "appliance": SwitchType.APPLIANCE,
}

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
AUGUST_STATE_PREFIX = "kauglockstate_"


@dataclass
class VendorDeviceRecord:
    """Vendor-neutral intermediate form of one device payload.

    Attributes:
        vendor: Owning adapter name
        device_id: Vendor device identifier
        name: Display name
        capabilities: Declared capability names
        attributes: capability -> attribute -> value
        device_type: Explicit vendor type string, if the payload has one
        online: Reachability reported by the vendor
        last_seen: Last report time
        remote_operation_enabled: Lock remote-operation flag
        access_history: Lock history already converted by the adapter
    """

    vendor: str
    device_id: str
    name: str = ""
    capabilities: list[str] = field(default_factory=list)
    attributes: dict[str, dict[str, Any]] = field(default_factory=dict)
    device_type: str | None = None
    location: str | None = None
    manufacturer: str | None = None
    model: str | None = None
    firmware_version: str | None = None
    online: bool = True
    last_seen: datetime | None = None
    property_id: str | None = None
    unit_id: str | None = None
    remote_operation_enabled: bool = True
    access_history: list[AccessRecord] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)

    def attribute(self, capability: str, name: str) -> Any:
        return self.attributes.get(capability, {}).get(name)


def _type_token(device_type: str) -> str:
    value = device_type.strip().lower()
    if value.startswith("oic.d."):
        value = value[len("oic.d."):]
    return _NON_ALNUM.sub("", value)


def _type_words(device_type: str) -> list[str]:
    return [w for w in _NON_ALNUM.split(device_type.strip().lower()) if w]


def kind_from_type(device_type: str | None) -> DeviceKind | None:
    """Resolve an explicit vendor type string, or None if unrecognized.

    Examples:
        >>> kind_from_type("oic.d.smartlock")
        <DeviceKind.LOCK: 'lock'>
        >>> kind_from_type("Z-Wave Lock")
        <DeviceKind.LOCK: 'lock'>
        >>> kind_from_type("Mystery Box") is None
        True
    """
    if not device_type:
        return None
    token = _type_token(device_type)
    if token in TYPE_ALIASES:
        return TYPE_ALIASES[token]
    words = _type_words(device_type)
    if words and words[-1] in TYPE_ALIASES:
        return TYPE_ALIASES[words[-1]]
    return None


def parse_lock_state(value: Any) -> LockState:
    text = str(value or "").strip().lower()
    if text.startswith(AUGUST_STATE_PREFIX):
        text = text[len(AUGUST_STATE_PREFIX):]
    if "unlock" in text:
        return LockState.UNLOCKED
    if "lock" in text:
        return LockState.LOCKED
    if "jam" in text:
        return LockState.JAMMED
    return LockState.UNKNOWN


def parse_thermostat_mode(value: Any) -> ThermostatMode | None:
    text = _NON_ALNUM.sub("", str(value or "").lower())
    return {
        "off": ThermostatMode.OFF,
        "heat": ThermostatMode.HEAT,
        "emergencyheat": ThermostatMode.HEAT,
        "auxheatonly": ThermostatMode.HEAT,
        "cool": ThermostatMode.COOL,
        "auto": ThermostatMode.AUTO,
        "heatcool": ThermostatMode.AUTO,
        "fanonly": ThermostatMode.FAN_ONLY,
    }.get(text)


def parse_fan_mode(value: Any) -> FanMode | None:
    text = _NON_ALNUM.sub("", str(value or "").lower())
    return {
        "auto": FanMode.AUTO,
        "on": FanMode.ON,
        "circulate": FanMode.CIRCULATE,
        "followschedule": FanMode.AUTO,
    }.get(text)


def _as_float(value: Any, label: str) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        value = value.get("value")
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring non-numeric {label}: {value!r}")
        return None


def _as_int(value: Any, label: str) -> int | None:
    number = _as_float(value, label)
    return None if number is None else round(number)


TRUE_WORDS = frozenset({"true", "1", "yes", "on", "enabled"})
FALSE_WORDS = frozenset({"false", "0", "no", "off", "disabled", ""})


def parse_flag(value: Any, default: bool) -> bool:
    """Read a vendor boolean that may arrive as a bool, number or string.

    Only ``None`` yields ``default``; strings that are neither a known
    true word nor a known false word read as False.

    Examples:
        >>> parse_flag("false", True)
        False
        >>> parse_flag(None, True)
        True
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in TRUE_WORDS:
        return True
    if text not in FALSE_WORDS:
        logger.warning(f"Unrecognized boolean flag {value!r}, treating as false")
    return False


def expect_object(
    value: Any, what: str, vendor: str, optional: bool = False
) -> dict[str, Any]:
    """Return ``value`` if it is a JSON object.

    Args:
        value: Decoded JSON value
        what: Description used in the error message
        vendor: Vendor whose payload is being read
        optional: Treat None (an empty body) as an empty object

    Raises:
        MappingError: If the value is not an object
    """
    if value is None and optional:
        return {}
    if not isinstance(value, dict):
        raise MappingError(f"{what} is not an object (got {type(value).__name__})", vendor)
    return value


def expect_list(value: Any, what: str, vendor: str) -> list[Any]:
    """Return ``value`` if it is a JSON array, treating None as empty.

    Raises:
        MappingError: If the value is neither None nor an array
    """
    if value is None:
        return []
    if not isinstance(value, list):
        raise MappingError(f"{what} is not a list (got {type(value).__name__})", vendor)
    return value


class NormalizationEngine:
    """Builds unified devices from vendor records.

    Attributes:
        rules: Ordered capability rules; first match wins
    """

    def __init__(self, rules: tuple[CapabilityRule, ...] = DEFAULT_RULES) -> None:
        self.rules = rules

    def infer_kind(
        self, device_type: str | None, capabilities: list[str] | set[str]
    ) -> DeviceKind:
        """Pick the device kind for a payload.

        Args:
            device_type: Explicit vendor type, if any
            capabilities: Declared capabilities

        Returns:
            Explicit kind when recognized, else first matching rule, else GENERIC
        """
        explicit = kind_from_type(device_type)
        if explicit is not None:
            return explicit
        caps = set(capabilities)
        for rule in self.rules:
            if rule.matches(caps):
                return rule.kind
        return DeviceKind.GENERIC

    def normalize(self, record: VendorDeviceRecord) -> UnifiedDevice:
        """Convert a vendor record into its device variant.

        Raises:
            MappingError: If the record has no device id
        """
        if not record.device_id:
            raise MappingError("Device payload has no identifier", record.vendor)

        kind = self.infer_kind(record.device_type, record.capabilities)
        envelope = {
            "id": record.device_id,
            "vendor": record.vendor,
            "name": record.name or record.device_id,
            "location": record.location,
            "manufacturer": record.manufacturer,
            "model": record.model,
            "firmware_version": record.firmware_version,
            "is_online": record.online,
            "last_seen": record.last_seen,
            "property_id": record.property_id,
            "unit_id": record.unit_id,
            "metadata": {k: str(v) for k, v in record.metadata.items()},
        }
        builder = {
            DeviceKind.LOCK: self._build_lock,
            DeviceKind.THERMOSTAT: self._build_thermostat,
            DeviceKind.LIGHT: self._build_light,
            DeviceKind.SWITCH: self._build_switch,
            DeviceKind.GENERIC: self._build_generic,
        }[kind]
        return builder(record, envelope)

    def normalize_many(self, records: list[VendorDeviceRecord]) -> list[UnifiedDevice]:
        """Normalize a batch, skipping records that fail to map."""
        devices = []
        for record in records:
            try:
                devices.append(self.normalize(record))
            except MappingError as e:
                logger.warning(f"Skipping device {record.device_id!r}: {e}")
        return devices

    def _build_lock(self, record: VendorDeviceRecord, envelope: dict) -> LockDevice:
        return LockDevice(
            **envelope,
            lock_state=parse_lock_state(record.attribute(LOCK, "lock")),
            battery_level=_as_int(record.attribute(BATTERY, "battery"), "battery"),
            remote_operation_enabled=record.remote_operation_enabled,
            access_history=list(record.access_history),
        )

    def _build_thermostat(
        self, record: VendorDeviceRecord, envelope: dict
    ) -> ThermostatDevice:
        mode = parse_thermostat_mode(record.attribute(THERMOSTAT_MODE, "thermostatMode"))
        mode = mode or ThermostatMode.OFF
        fan_mode = parse_fan_mode(
            record.attribute(THERMOSTAT_FAN_MODE, "thermostatFanMode")
        ) or FanMode.AUTO
        heating = _as_float(
            record.attribute(HEATING_SETPOINT, "heatingSetpoint"), "heatingSetpoint"
        )
        cooling = _as_float(
            record.attribute(COOLING_SETPOINT, "coolingSetpoint"), "coolingSetpoint"
        )
        general = _as_float(
            record.attribute(THERMOSTAT_SETPOINT, "thermostatSetpoint"),
            "thermostatSetpoint",
        )
        if mode == ThermostatMode.COOL:
            target = cooling if cooling is not None else general
        elif mode in (ThermostatMode.HEAT, ThermostatMode.AUTO):
            target = heating if heating is not None else general
        else:
            target = next((v for v in (heating, cooling, general) if v is not None), None)

        operating = str(
            record.attribute(THERMOSTAT_OPERATING_STATE, "thermostatOperatingState") or ""
        ).lower()
        is_heating = "heat" in operating
        is_cooling = "cool" in operating
        is_fan_running = (
            is_heating or is_cooling or "fan" in operating or fan_mode != FanMode.AUTO
        )

        temperature_range = DEFAULT_TEMPERATURE_RANGE
        low = _as_float(record.metadata.get("min_temperature"), "min_temperature")
        high = _as_float(record.metadata.get("max_temperature"), "max_temperature")
        if low is not None and high is not None and low < high:
            temperature_range = (low, high)

        return ThermostatDevice(
            **envelope,
            current_temperature=_as_float(
                record.attribute(TEMPERATURE, "temperature"), "temperature"
            ),
            target_temperature=target,
            heating_setpoint=heating,
            cooling_setpoint=cooling,
            humidity=_as_float(record.attribute(HUMIDITY, "humidity"), "humidity"),
            mode=mode,
            fan_mode=fan_mode,
            is_heating=is_heating,
            is_cooling=is_cooling,
            is_fan_running=is_fan_running,
            temperature_range=temperature_range,
        )

    def _build_light(self, record: VendorDeviceRecord, envelope: dict) -> LightDevice:
        caps = set(record.capabilities)
        brightness = _as_int(record.attribute(SWITCH_LEVEL, "level"), "level")
        color = None
        hue = _as_float(record.attribute(COLOR_CONTROL, "hue"), "hue")
        saturation = _as_float(record.attribute(COLOR_CONTROL, "saturation"), "saturation")
        if hue is not None and saturation is not None:
            # Percent-scaled hue
            color = LightColor(
                hue=hue * 3.6,
                saturation=saturation,
                brightness=brightness if brightness is not None else 100,
            )
        return LightDevice(
            **envelope,
            is_on=str(record.attribute(SWITCH, "switch") or "").lower() == "on",
            brightness=brightness,
            color=color,
            supports_color=COLOR_CONTROL in caps,
            supports_dimming=SWITCH_LEVEL in caps,
        )

    def _build_switch(self, record: VendorDeviceRecord, envelope: dict) -> SwitchDevice:
        return SwitchDevice(
            **envelope,
            is_on=str(record.attribute(SWITCH, "switch") or "").lower() == "on",
            switch_type=self._switch_type(record),
        )

    def _switch_type(self, record: VendorDeviceRecord) -> SwitchType:
        if record.device_type:
            token = _type_token(record.device_type)
            words = _type_words(record.device_type)
            for candidate in [token, *words]:
                if candidate in SWITCH_TYPE_ALIASES:
                    return SWITCH_TYPE_ALIASES[candidate]
        caps = set(record.capabilities)
        if FAN_SPEED in caps:
            return SwitchType.FAN
        if OUTLET in caps or POWER_METER in caps:
            return SwitchType.OUTLET
        return SwitchType.GENERIC

    def _build_generic(
        self, record: VendorDeviceRecord, envelope: dict
    ) -> GenericDevice:
        attributes = {
            f"{capability}.{name}": value
            for capability, values in record.attributes.items()
            for name, value in values.items()
        }
        return GenericDevice(
            **envelope, capabilities=list(record.capabilities), attributes=attributes
        )

    def apply_attribute(
        self, device: DeviceEnvelope, capability: str, attribute: str, value: Any
    ) -> DeviceEnvelope:
        """Apply a single pushed attribute change to a copy of a device.

        Args:
            device: Current device snapshot
            capability: Capability name of the event
            attribute: Attribute name of the event
            value: New attribute value

        Returns:
            Updated copy; unchanged copy when the event does not apply
        """
        updated = device.snapshot()
        if isinstance(updated, LockDevice):
            if capability == LOCK:
                updated.lock_state = parse_lock_state(value)
            elif capability == BATTERY:
                updated.battery_level = _as_int(value, "battery")
        elif isinstance(updated, LightDevice):
            if capability == SWITCH:
                updated.is_on = str(value).lower() == "on"
            elif capability == SWITCH_LEVEL:
                level = _as_int(value, "level")
                if level is not None:
                    updated.brightness = level
        elif isinstance(updated, SwitchDevice):
            if capability == SWITCH:
                updated.set_state(str(value).lower() == "on")
        elif isinstance(updated, ThermostatDevice):
            self._apply_thermostat_attribute(updated, capability, value)
        elif isinstance(updated, GenericDevice):
            updated.attributes = {**updated.attributes, f"{capability}.{attribute}": value}
        return updated

    def _apply_thermostat_attribute(
        self, device: ThermostatDevice, capability: str, value: Any
    ) -> None:
        if capability == TEMPERATURE:
            device.current_temperature = _as_float(value, "temperature")
        elif capability == HUMIDITY:
            device.humidity = _as_float(value, "humidity")
        elif capability == HEATING_SETPOINT:
            device.heating_setpoint = _as_float(value, "heatingSetpoint")
            device.set_mode(device.mode)
        elif capability == COOLING_SETPOINT:
            device.cooling_setpoint = _as_float(value, "coolingSetpoint")
            device.set_mode(device.mode)
        elif capability == THERMOSTAT_MODE:
            mode = parse_thermostat_mode(value)
            if mode is not None:
                device.set_mode(mode)
        elif capability == THERMOSTAT_FAN_MODE:
            fan_mode = parse_fan_mode(value)
            if fan_mode is not None:
                device.set_fan_mode(fan_mode)
        elif capability == THERMOSTAT_OPERATING_STATE:
            state = str(value or "").lower()
            device.is_heating = "heat" in state
            device.is_cooling = "cool" in state
            device.is_fan_running = (
                device.is_heating or device.is_cooling or "fan" in state
            )


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO-8601 strings or epoch seconds/milliseconds as UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Ignoring unparseable timestamp: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
