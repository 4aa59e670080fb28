"""Tests for optimistic command effects and state verification."""

from __future__ import annotations

import pytest

from device_gateway.core.errors import CommandNotSupported
from device_gateway.core.models import (
    GenericDevice,
    LockCommand,
    LockState,
    SetAttribute,
    SetBrightness,
    SetHeatingSetpoint,
    SetTemperature,
    SwitchDevice,
    TurnOn,
    UnlockCommand,
)
from device_gateway.services.command_effects import apply_command, verify_state


class TestApplyCommand:
    """Test expected post-command state."""

    def test_unlock_returns_copy(self, lock_device):
        expected = apply_command(lock_device, UnlockCommand())
        assert expected.lock_state == LockState.UNLOCKED
        assert lock_device.lock_state == LockState.LOCKED

    def test_wrong_variant_rejected(self, lock_device):
        with pytest.raises(CommandNotSupported):
            apply_command(lock_device, SetBrightness(level=10))

    def test_out_of_range_setpoint_rejected(self, thermostat_device):
        with pytest.raises(CommandNotSupported):
            apply_command(thermostat_device, SetTemperature(value=120))

    def test_switch_turn_on(self):
        switch = SwitchDevice(id="s1", vendor="mock")
        expected = apply_command(switch, TurnOn())
        assert expected.is_on is True
        assert expected.last_toggled is not None

    def test_generic_set_attribute(self):
        device = GenericDevice(id="g1", vendor="mock")
        expected = apply_command(device, SetAttribute(key="mode", value="away"))
        assert expected.attributes == {"mode": "away"}


class TestVerifyState:
    """Test comparison of expected and re-fetched state."""

    def test_lock_match(self, lock_device):
        expected = apply_command(lock_device, LockCommand())
        assert verify_state(expected, lock_device.snapshot(), LockCommand()) is None

    def test_lock_mismatch(self, lock_device):
        expected = apply_command(lock_device, UnlockCommand())
        reason = verify_state(expected, lock_device, UnlockCommand())
        assert reason == "lock state is locked, expected unlocked"

    def test_setpoint_tolerance(self, thermostat_device):
        command = SetHeatingSetpoint(value=72)
        expected = apply_command(thermostat_device, command)
        actual = expected.snapshot()
        actual.heating_setpoint = 72.4
        assert verify_state(expected, actual, command) is None
        actual.heating_setpoint = 71
        assert "heating setpoint" in verify_state(expected, actual, command)

    def test_brightness_checked_only_for_brightness_commands(self, light_device):
        command = SetBrightness(level=80)
        expected = apply_command(light_device, command)
        actual = expected.snapshot()
        actual.brightness = 79
        assert verify_state(expected, actual, command) == "brightness is 79, expected 80"
        assert verify_state(expected, actual, TurnOn()) is None
