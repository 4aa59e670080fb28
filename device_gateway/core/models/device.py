"""Unified device model.

A device is one of five variants sharing a common envelope. The
variant is selected by the ``kind`` discriminator, so serialized
devices round-trip through ``parse_device`` without knowing the
concrete class in advance.
"""

from __future__ import annotations

import colorsys
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from device_gateway.core.models.access import DeviceOperation, TenancyScope, utcnow

LOW_BATTERY_THRESHOLD = 20
DEFAULT_TEMPERATURE_RANGE = (40.0, 90.0)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class DeviceKind(str, Enum):
    """Discriminator values for the device variants."""

    LOCK = "lock"
    THERMOSTAT = "thermostat"
    LIGHT = "light"
    SWITCH = "switch"
    GENERIC = "generic"


class LockState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    JAMMED = "jammed"
    UNKNOWN = "unknown"


class ThermostatMode(str, Enum):
    OFF = "off"
    HEAT = "heat"
    COOL = "cool"
    AUTO = "auto"
    FAN_ONLY = "fan_only"


class FanMode(str, Enum):
    AUTO = "auto"
    ON = "on"
    CIRCULATE = "circulate"


class SwitchType(str, Enum):
    LIGHT = "light"
    OUTLET = "outlet"
    FAN = "fan"
    APPLIANCE = "appliance"
    GENERIC = "generic"


class AccessRecord(BaseModel):
    """One lock or unlock attempt. Immutable once written.

    Attributes:
        timestamp: When the attempt finished
        operation: Lock operation attempted
        actor_id: User who issued the command
        success: Whether the device reached the commanded state
        failure_reason: Sanitized reason when success is False
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)
    operation: DeviceOperation
    actor_id: str
    success: bool
    failure_reason: str | None = None


class LightColor(BaseModel):
    """HSB color. Out-of-range components are clamped, never rejected.

    Attributes:
        hue: Hue in degrees, 0-360
        saturation: Saturation percentage, 0-100
        brightness: Brightness percentage, 0-100

    Examples:
        >>> LightColor(hue=400, saturation=-5, brightness=50).hue
        360.0
        >>> LightColor.from_rgb(255, 0, 0).to_hex()
        '#FF0000'
    """

    model_config = ConfigDict(frozen=True)

    hue: float = 0.0
    saturation: float = 0.0
    brightness: float = 100.0

    @field_validator("hue")
    @classmethod
    def clamp_hue(cls, v: float) -> float:
        return _clamp(v, 0.0, 360.0)

    @field_validator("saturation", "brightness")
    @classmethod
    def clamp_percent(cls, v: float) -> float:
        return _clamp(v, 0.0, 100.0)

    @classmethod
    def from_rgb(cls, red: int, green: int, blue: int) -> LightColor:
        """Build a color from 8-bit RGB components.

        Args:
            red: Red component, 0-255
            green: Green component, 0-255
            blue: Blue component, 0-255

        Returns:
            Equivalent HSB color
        """
        r, g, b = (_clamp(c, 0, 255) / 255.0 for c in (red, green, blue))
        h, s, v = colorsys.rgb_to_hsv(r, g, b)
        return cls(hue=h * 360.0, saturation=s * 100.0, brightness=v * 100.0)

    def to_rgb(self) -> tuple[int, int, int]:
        """Convert to 8-bit RGB components."""
        r, g, b = colorsys.hsv_to_rgb(
            (self.hue % 360.0) / 360.0, self.saturation / 100.0, self.brightness / 100.0
        )
        return round(r * 255), round(g * 255), round(b * 255)

    def to_hex(self) -> str:
        """Format as an upper-case ``#RRGGBB`` string."""
        return "#{:02X}{:02X}{:02X}".format(*self.to_rgb())


class DeviceEnvelope(BaseModel):
    """Fields shared by every device variant.

    ``id`` and ``kind`` are frozen; ``is_online`` and ``last_seen`` are
    the only fields updated outside explicit user commands.

    Attributes:
        id: Vendor-scoped identifier, unique within the gateway
        vendor: Name of the adapter that owns the device
        name: Display name
        location: Room or area label
        manufacturer: Device manufacturer
        model: Device model
        firmware_version: Reported firmware version
        is_online: Whether the vendor cloud can reach the device
        last_seen: Last time the device reported in
        created_at: When the gateway first saw the device
        property_id: Property the device is installed in, if known
        unit_id: Unit the device is installed in, if known
        metadata: Free-form vendor metadata
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., min_length=1, frozen=True)
    vendor: str = Field(..., description="Owning adapter name")
    name: str = ""
    location: str | None = None
    manufacturer: str | None = None
    model: str | None = None
    firmware_version: str | None = None
    is_online: bool = True
    last_seen: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    property_id: str | None = None
    unit_id: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def scope(self) -> TenancyScope | None:
        """Tenancy scope used for authorization, None when unscoped."""
        if self.property_id is None and self.unit_id is None:
            return None
        return TenancyScope(property_id=self.property_id, unit_id=self.unit_id)

    def mark_health(self, online: bool, seen_at: datetime | None = None) -> None:
        """Update reachability after a vendor health report."""
        self.is_online = online
        self.last_seen = seen_at or utcnow()

    def snapshot(self):
        """Return an independent deep copy of this device."""
        return self.model_copy(deep=True)


class LockDevice(DeviceEnvelope):
    """Door lock with an append-only access history."""

    kind: Literal["lock"] = Field(default="lock", frozen=True)
    lock_state: LockState = LockState.UNKNOWN
    battery_level: int | None = None
    remote_operation_enabled: bool = True
    access_history: list[AccessRecord] = Field(default_factory=list)

    @field_validator("battery_level")
    @classmethod
    def clamp_battery(cls, v: int | None) -> int | None:
        return None if v is None else int(_clamp(v, 0, 100))

    @property
    def is_low_battery(self) -> bool:
        return self.battery_level is not None and self.battery_level < LOW_BATTERY_THRESHOLD

    def record_access(
        self,
        operation: DeviceOperation,
        actor_id: str,
        success: bool,
        failure_reason: str | None = None,
        timestamp: datetime | None = None,
    ) -> AccessRecord:
        """Append an access record and return it."""
        record = AccessRecord(
            timestamp=timestamp or utcnow(),
            operation=operation,
            actor_id=actor_id,
            success=success,
            failure_reason=failure_reason,
        )
        self.access_history.append(record)
        return record


class ThermostatDevice(DeviceEnvelope):
    """Thermostat with explicit heating and cooling setpoints.

    ``target_temperature`` follows the active mode: the heating setpoint
    in heat and auto, the cooling setpoint in cool. Both setpoints are
    kept so a dual-setpoint auto configuration is not collapsed.

    Attributes:
        current_temperature: Measured temperature
        target_temperature: Setpoint for the active mode
        heating_setpoint: Heat-to temperature
        cooling_setpoint: Cool-to temperature
        humidity: Relative humidity percentage
        mode: Operating mode
        fan_mode: Fan mode
        is_heating: Equipment currently heating
        is_cooling: Equipment currently cooling
        is_fan_running: Fan currently running
        temperature_range: Inclusive (min, max) accepted setpoint range
    """

    kind: Literal["thermostat"] = Field(default="thermostat", frozen=True)
    current_temperature: float | None = None
    target_temperature: float | None = None
    heating_setpoint: float | None = None
    cooling_setpoint: float | None = None
    humidity: float | None = None
    mode: ThermostatMode = ThermostatMode.OFF
    fan_mode: FanMode = FanMode.AUTO
    is_heating: bool = False
    is_cooling: bool = False
    is_fan_running: bool = False
    temperature_range: tuple[float, float] = DEFAULT_TEMPERATURE_RANGE

    def in_range(self, value: float) -> bool:
        low, high = self.temperature_range
        return low <= value <= high

    def set_target_temperature(self, value: float) -> bool:
        """Set the setpoint for the active mode.

        Args:
            value: Requested temperature

        Returns:
            False if the value is outside the supported range
        """
        if not self.in_range(value):
            return False
        if self.mode == ThermostatMode.COOL:
            self.cooling_setpoint = value
        else:
            self.heating_setpoint = value
        self.target_temperature = value
        self._update_operating_flags()
        return True

    def set_heating_setpoint(self, value: float) -> bool:
        if not self.in_range(value):
            return False
        self.heating_setpoint = value
        self._sync_target()
        return True

    def set_cooling_setpoint(self, value: float) -> bool:
        if not self.in_range(value):
            return False
        self.cooling_setpoint = value
        self._sync_target()
        return True

    def set_mode(self, mode: ThermostatMode) -> None:
        self.mode = mode
        self._sync_target()

    def set_fan_mode(self, fan_mode: FanMode) -> None:
        self.fan_mode = fan_mode
        self.is_fan_running = (
            fan_mode != FanMode.AUTO
            or self.is_heating
            or self.is_cooling
            or self.mode == ThermostatMode.FAN_ONLY
        )

    def _sync_target(self) -> None:
        if self.mode == ThermostatMode.COOL:
            self.target_temperature = self.cooling_setpoint
        elif self.mode in (ThermostatMode.HEAT, ThermostatMode.AUTO):
            self.target_temperature = (
                self.heating_setpoint
                if self.heating_setpoint is not None
                else self.cooling_setpoint
            )
        self._update_operating_flags()

    def _update_operating_flags(self) -> None:
        current = self.current_temperature
        heating = cooling = False
        if current is not None:
            if self.mode == ThermostatMode.HEAT and self.heating_setpoint is not None:
                heating = current < self.heating_setpoint
            elif self.mode == ThermostatMode.COOL and self.cooling_setpoint is not None:
                cooling = current > self.cooling_setpoint
            elif self.mode == ThermostatMode.AUTO:
                if self.heating_setpoint is not None:
                    heating = current < self.heating_setpoint
                if self.cooling_setpoint is not None:
                    cooling = current > self.cooling_setpoint
        self.is_heating = heating
        self.is_cooling = cooling
        self.is_fan_running = (
            heating
            or cooling
            or self.mode == ThermostatMode.FAN_ONLY
            or self.fan_mode != FanMode.AUTO
        )


class LightDevice(DeviceEnvelope):
    """Dimmable and/or color light."""

    kind: Literal["light"] = Field(default="light", frozen=True)
    is_on: bool = False
    brightness: int | None = None
    color: LightColor | None = None
    supports_color: bool = False
    supports_dimming: bool = False

    @field_validator("brightness")
    @classmethod
    def clamp_brightness(cls, v: int | None) -> int | None:
        return None if v is None else int(_clamp(v, 0, 100))

    def turn_on(self) -> None:
        self.is_on = True

    def turn_off(self) -> None:
        self.is_on = False

    def set_brightness(self, level: int) -> bool:
        """Set brightness, clamped to 0-100.

        Zero turns the light off; any positive level turns it on.

        Returns:
            False if the light does not support dimming
        """
        if not self.supports_dimming:
            return False
        self.brightness = level
        if self.brightness == 0:
            self.is_on = False
        elif not self.is_on:
            self.is_on = True
        return True

    def set_color(self, color: LightColor) -> bool:
        """Set color and switch the light on.

        Returns:
            False if the light does not support color
        """
        if not self.supports_color:
            return False
        self.color = color
        self.is_on = True
        if self.supports_dimming:
            self.brightness = round(color.brightness)
        return True


class SwitchDevice(DeviceEnvelope):
    """On/off switch, outlet or relay."""

    kind: Literal["switch"] = Field(default="switch", frozen=True)
    is_on: bool = False
    switch_type: SwitchType = SwitchType.GENERIC
    last_toggled: datetime | None = None

    def set_state(self, on: bool, at: datetime | None = None) -> None:
        if on != self.is_on:
            self.last_toggled = at or utcnow()
        self.is_on = on

    def toggle(self) -> None:
        self.set_state(not self.is_on)


class GenericDevice(DeviceEnvelope):
    """Fallback for devices no rule recognizes."""

    kind: Literal["generic"] = Field(default="generic", frozen=True)
    capabilities: list[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)


UnifiedDevice = Annotated[
    Union[LockDevice, ThermostatDevice, LightDevice, SwitchDevice, GenericDevice],
    Field(discriminator="kind"),
]

_device_adapter: TypeAdapter[UnifiedDevice] = TypeAdapter(UnifiedDevice)

DEVICE_CLASSES: dict[DeviceKind, type[DeviceEnvelope]] = {
    DeviceKind.LOCK: LockDevice,
    DeviceKind.THERMOSTAT: ThermostatDevice,
    DeviceKind.LIGHT: LightDevice,
    DeviceKind.SWITCH: SwitchDevice,
    DeviceKind.GENERIC: GenericDevice,
}


def parse_device(data: dict[str, Any]) -> UnifiedDevice:
    """Validate a serialized device into its variant class."""
    return _device_adapter.validate_python(data)


def device_kind(device: DeviceEnvelope) -> DeviceKind:
    return DeviceKind(device.kind)  # type: ignore[attr-defined]
