"""Tests for the unified device model."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from device_gateway.core.models import (
    DeviceOperation,
    FanMode,
    LightColor,
    LightDevice,
    LockDevice,
    ThermostatDevice,
    ThermostatMode,
    parse_device,
)


class TestLightDevice:
    """Test LightDevice brightness and color handling."""

    def test_brightness_clamped_high(self, light_device):
        """Test brightness above 100 is clamped and turns the light on."""
        assert light_device.set_brightness(150) is True
        assert light_device.brightness == 100
        assert light_device.is_on is True

    def test_brightness_clamped_low_turns_off(self, light_device):
        """Test negative brightness clamps to 0 and switches the light off."""
        light_device.is_on = True
        assert light_device.set_brightness(-20) is True
        assert light_device.brightness == 0
        assert light_device.is_on is False

    def test_brightness_rejected_without_dimming(self):
        """Test non-dimmable lights refuse brightness changes."""
        light = LightDevice(id="plain", vendor="mock", supports_dimming=False)
        assert light.set_brightness(40) is False
        assert light.brightness is None
        assert light.is_on is False

    def test_constructor_clamps_brightness(self):
        """Test the validator clamps brightness at construction time."""
        light = LightDevice(id="l", vendor="mock", brightness=250)
        assert light.brightness == 100

    def test_set_color_turns_on_and_sets_brightness(self, light_device):
        """Test setting a color switches on and copies brightness when dimmable."""
        assert light_device.set_color(LightColor(hue=200, saturation=50, brightness=30))
        assert light_device.is_on is True
        assert light_device.brightness == 30
        assert light_device.color.hue == 200

    def test_set_color_requires_support(self):
        """Test color changes fail on lights without color support."""
        light = LightDevice(id="l", vendor="mock", supports_color=False)
        assert light.set_color(LightColor(hue=10)) is False
        assert light.color is None


class TestLightColor:
    """Test LightColor clamping and RGB conversion."""

    def test_components_clamped(self):
        """Test out-of-range components are clamped rather than rejected."""
        color = LightColor(hue=400, saturation=-10, brightness=150)
        assert color.hue == 360
        assert color.saturation == 0
        assert color.brightness == 100

    @pytest.mark.parametrize(
        "rgb,hex_value",
        [
            ((255, 0, 0), "#FF0000"),
            ((0, 255, 0), "#00FF00"),
            ((0, 0, 255), "#0000FF"),
            ((255, 255, 255), "#FFFFFF"),
            ((0, 0, 0), "#000000"),
        ],
    )
    def test_rgb_conversion(self, rgb, hex_value):
        """Test primary colors, white and black convert exactly."""
        color = LightColor.from_rgb(*rgb)
        assert color.to_rgb() == rgb
        assert color.to_hex() == hex_value

    def test_from_rgb_hue(self):
        """Test hue of pure green is 120 degrees."""
        assert LightColor.from_rgb(0, 255, 0).hue == pytest.approx(120.0)


class TestThermostatDevice:
    """Test thermostat setpoint handling."""

    def test_target_out_of_range_rejected(self, thermostat_device):
        """Test setpoints outside the supported range are refused."""
        assert thermostat_device.set_target_temperature(95) is False
        assert thermostat_device.target_temperature == 70.0
        assert thermostat_device.heating_setpoint == 70.0

    def test_target_in_cool_mode_sets_cooling(self, thermostat_device):
        """Test target temperature in cool mode updates the cooling setpoint."""
        thermostat_device.set_mode(ThermostatMode.COOL)
        assert thermostat_device.target_temperature == 76.0

        assert thermostat_device.set_target_temperature(74) is True
        assert thermostat_device.cooling_setpoint == 74
        assert thermostat_device.heating_setpoint == 70.0

    def test_auto_mode_keeps_both_setpoints(self, thermostat_device):
        """Test auto mode keeps heating and cooling setpoints distinct."""
        thermostat_device.set_mode(ThermostatMode.AUTO)
        assert thermostat_device.heating_setpoint == 70.0
        assert thermostat_device.cooling_setpoint == 76.0
        assert thermostat_device.target_temperature == 70.0

    def test_heating_flag_follows_setpoint(self, thermostat_device):
        """Test heating flag is set while below the heating setpoint."""
        thermostat_device.set_heating_setpoint(72)
        assert thermostat_device.is_heating is True
        thermostat_device.set_heating_setpoint(60)
        assert thermostat_device.is_heating is False

    def test_fan_mode_on_runs_fan(self, thermostat_device):
        """Test fan mode 'on' marks the fan as running."""
        thermostat_device.set_mode(ThermostatMode.OFF)
        thermostat_device.set_fan_mode(FanMode.ON)
        assert thermostat_device.is_fan_running is True


class TestLockDevice:
    """Test lock battery and access history."""

    def test_battery_clamped(self):
        """Test battery level is clamped to 0-100."""
        assert LockDevice(id="l", vendor="mock", battery_level=150).battery_level == 100
        assert LockDevice(id="l", vendor="mock", battery_level=-3).battery_level == 0

    def test_low_battery_threshold(self, lock_device):
        """Test low battery is reported strictly below 20."""
        lock_device.battery_level = 20
        assert lock_device.is_low_battery is False
        lock_device.battery_level = 19
        assert lock_device.is_low_battery is True

    def test_record_access_appends(self, lock_device):
        """Test access records are appended in order."""
        lock_device.record_access(DeviceOperation.UNLOCK, "u1", success=True)
        lock_device.record_access(
            DeviceOperation.LOCK, "u2", success=False, failure_reason="jammed"
        )
        assert [r.actor_id for r in lock_device.access_history] == ["u1", "u2"]
        assert lock_device.access_history[1].failure_reason == "jammed"

    def test_access_record_immutable(self, lock_device):
        """Test stored access records cannot be modified."""
        record = lock_device.record_access(DeviceOperation.LOCK, "u1", success=True)
        with pytest.raises(ValidationError):
            record.success = False


class TestEnvelope:
    """Test behavior shared by all variants."""

    def test_id_is_frozen(self, lock_device):
        """Test the device id cannot be reassigned."""
        with pytest.raises(ValidationError):
            lock_device.id = "other"

    def test_snapshot_is_independent(self, lock_device):
        """Test mutating a snapshot leaves the original untouched."""
        copy = lock_device.snapshot()
        copy.record_access(DeviceOperation.LOCK, "u1", success=True)
        copy.name = "Changed"
        assert lock_device.access_history == []
        assert lock_device.name == "Front Door"

    def test_parse_device_selects_variant(self, thermostat_device):
        """Test serialized devices are restored to their variant class."""
        restored = parse_device(thermostat_device.model_dump())
        assert isinstance(restored, ThermostatDevice)
        assert restored.model_dump() == thermostat_device.model_dump()

    def test_scope(self, lock_device):
        """Test scope is derived from property and unit."""
        assert lock_device.scope.key == "property-1/unit-101"
        assert LockDevice(id="x", vendor="mock").scope is None
