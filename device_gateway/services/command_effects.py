"""Expected effects of commands on devices.

`apply_command` produces the state a device should reach after a
command (the optimistic update); `verify_state` compares that
expectation with the state re-fetched from the vendor.
"""

from __future__ import annotations

from device_gateway.core.errors import CommandNotSupported
from device_gateway.core.models.command import (
    DeviceCommand,
    ExecuteCustom,
    LockCommand,
    SetAttribute,
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
    GenericDevice,
    LightDevice,
    LockDevice,
    LockState,
    SwitchDevice,
    ThermostatDevice,
)

TEMPERATURE_TOLERANCE = 0.5


def _unsupported(command: DeviceCommand, device: DeviceEnvelope) -> CommandNotSupported:
    return CommandNotSupported(command.type, device.id, device.vendor)


def _ensure(ok: bool, command: DeviceCommand, device: DeviceEnvelope) -> None:
    if not ok:
        raise _unsupported(command, device)


def apply_command(device: DeviceEnvelope, command: DeviceCommand) -> DeviceEnvelope:
    """Return a copy of `device` with the command's expected effect applied.

    Raises:
        CommandNotSupported: If the command does not apply to the variant
            or the device lacks the capability, or the value is out of range
    """
    expected = device.snapshot()

    if isinstance(expected, LockDevice):
        if isinstance(command, LockCommand):
            expected.lock_state = LockState.LOCKED
        elif isinstance(command, UnlockCommand):
            expected.lock_state = LockState.UNLOCKED
        else:
            raise _unsupported(command, device)

    elif isinstance(expected, ThermostatDevice):
        if isinstance(command, SetTemperature):
            _ensure(expected.set_target_temperature(command.value), command, device)
        elif isinstance(command, SetHeatingSetpoint):
            _ensure(expected.set_heating_setpoint(command.value), command, device)
        elif isinstance(command, SetCoolingSetpoint):
            _ensure(expected.set_cooling_setpoint(command.value), command, device)
        elif isinstance(command, SetMode):
            expected.set_mode(command.mode)
        elif isinstance(command, SetFanMode):
            expected.set_fan_mode(command.mode)
        else:
            raise _unsupported(command, device)

    elif isinstance(expected, LightDevice):
        if isinstance(command, TurnOn):
            expected.turn_on()
        elif isinstance(command, TurnOff):
            expected.turn_off()
        elif isinstance(command, SetSwitch):
            expected.is_on = command.on
        elif isinstance(command, SetBrightness):
            _ensure(expected.set_brightness(command.level), command, device)
        elif isinstance(command, SetColor):
            _ensure(expected.set_color(command.color), command, device)
        else:
            raise _unsupported(command, device)

    elif isinstance(expected, SwitchDevice):
        if isinstance(command, TurnOn):
            expected.set_state(True)
        elif isinstance(command, TurnOff):
            expected.set_state(False)
        elif isinstance(command, SetSwitch):
            expected.set_state(command.on)
        else:
            raise _unsupported(command, device)

    elif isinstance(expected, GenericDevice):
        if isinstance(command, SetAttribute):
            expected.attributes = {**expected.attributes, command.key: command.value}
        elif not isinstance(command, ExecuteCustom):
            raise _unsupported(command, device)

    return expected


def _close(a: float | None, b: float | None) -> bool:
    if a is None or b is None:
        return a is b
    return abs(a - b) <= TEMPERATURE_TOLERANCE


def verify_state(
    expected: DeviceEnvelope, actual: DeviceEnvelope, command: DeviceCommand
) -> str | None:
    """Compare re-fetched state against the expected post-command state.

    Args:
        expected: Optimistically updated device
        actual: Device as reported by the vendor after the settle delay
        command: Command that was executed

    Returns:
        Description of the mismatch, or None when the state matches
    """
    if type(expected) is not type(actual):
        return (
            f"device kind changed from {type(expected).__name__} "
            f"to {type(actual).__name__}"
        )

    if isinstance(expected, LockDevice) and isinstance(actual, LockDevice):
        if actual.lock_state != expected.lock_state:
            return (
                f"lock state is {actual.lock_state.value}, "
                f"expected {expected.lock_state.value}"
            )

    elif isinstance(expected, LightDevice) and isinstance(actual, LightDevice):
        if actual.is_on != expected.is_on:
            return f"light is_on={actual.is_on}, expected {expected.is_on}"
        checks_brightness = isinstance(command, (SetBrightness, SetColor))
        if checks_brightness and expected.brightness is not None:
            if actual.brightness != expected.brightness:
                return f"brightness is {actual.brightness}, expected {expected.brightness}"

    elif isinstance(expected, ThermostatDevice) and isinstance(actual, ThermostatDevice):
        if actual.mode != expected.mode:
            return f"mode is {actual.mode.value}, expected {expected.mode.value}"
        if isinstance(command, SetFanMode) and actual.fan_mode != expected.fan_mode:
            return (
                f"fan mode is {actual.fan_mode.value}, "
                f"expected {expected.fan_mode.value}"
            )
        pairs = {
            SetHeatingSetpoint: ("heating setpoint", "heating_setpoint"),
            SetCoolingSetpoint: ("cooling setpoint", "cooling_setpoint"),
            SetTemperature: ("target temperature", "target_temperature"),
        }
        if type(command) in pairs:
            label, attr = pairs[type(command)]
            got, want = getattr(actual, attr), getattr(expected, attr)
            if not _close(got, want):
                return f"{label} is {got}, expected {want}"

    elif isinstance(expected, SwitchDevice) and isinstance(actual, SwitchDevice):
        if actual.is_on != expected.is_on:
            return f"switch is_on={actual.is_on}, expected {expected.is_on}"

    return None
