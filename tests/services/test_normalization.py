"""Tests for the normalization engine."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from device_gateway.core.errors import MappingError
from device_gateway.core.models import (
    DeviceKind,
    FanMode,
    GenericDevice,
    LightDevice,
    LockDevice,
    LockState,
    SwitchDevice,
    SwitchType,
    ThermostatDevice,
    ThermostatMode,
)
from device_gateway.services.normalization import (
    NormalizationEngine,
    VendorDeviceRecord,
    expect_list,
    expect_object,
    kind_from_type,
    parse_flag,
    parse_lock_state,
    parse_timestamp,
)


@pytest.fixture
def engine():
    return NormalizationEngine()


class TestKindInference:
    """Test explicit type precedence and the capability rule table."""

    @pytest.mark.parametrize(
        "device_type,expected",
        [
            ("oic.d.smartlock", DeviceKind.LOCK),
            ("Z-Wave Lock", DeviceKind.LOCK),
            ("oic.d.thermostat", DeviceKind.THERMOSTAT),
            ("Smart Plug", DeviceKind.SWITCH),
            ("Mystery Box", None),
            (None, None),
        ],
    )
    def test_kind_from_type(self, device_type, expected):
        assert kind_from_type(device_type) == expected

    def test_explicit_type_beats_capabilities(self, engine):
        """Test a recognized vendor type wins over capability rules."""
        assert engine.infer_kind("light", ["switch"]) == DeviceKind.LIGHT

    @pytest.mark.parametrize(
        "capabilities,expected",
        [
            (["lock", "battery"], DeviceKind.LOCK),
            (["temperatureMeasurement"], DeviceKind.THERMOSTAT),
            (["thermostatMode", "switch"], DeviceKind.THERMOSTAT),
            (["switch", "switchLevel"], DeviceKind.LIGHT),
            (["switch", "colorControl"], DeviceKind.LIGHT),
            (["switch"], DeviceKind.SWITCH),
            (["waterSensor"], DeviceKind.GENERIC),
            ([], DeviceKind.GENERIC),
        ],
    )
    def test_capability_rules(self, engine, capabilities, expected):
        """Test first matching rule decides the kind."""
        assert engine.infer_kind(None, capabilities) == expected

    def test_lock_rule_precedes_switch(self, engine):
        """Test a lock that also reports a switch is still a lock."""
        assert engine.infer_kind(None, ["switch", "lock"]) == DeviceKind.LOCK


class TestNormalize:
    """Test building device variants from vendor records."""

    def test_lock(self, engine):
        record = VendorDeviceRecord(
            vendor="yale",
            device_id="abc12345",
            name="Front",
            capabilities=["lock", "battery"],
            attributes={"lock": {"lock": "Unlocked"}, "battery": {"battery": 15.4}},
            remote_operation_enabled=False,
        )

        device = engine.normalize(record)

        assert isinstance(device, LockDevice)
        assert device.lock_state == LockState.UNLOCKED
        assert device.battery_level == 15
        assert device.is_low_battery is True
        assert device.remote_operation_enabled is False

    def test_thermostat_dual_setpoints(self, engine):
        """Test heat and cool setpoints are both kept and target follows mode."""
        record = VendorDeviceRecord(
            vendor="smartthings",
            device_id="t1",
            capabilities=["thermostatMode", "temperatureMeasurement"],
            attributes={
                "temperatureMeasurement": {"temperature": 71},
                "thermostatMode": {"thermostatMode": "cool"},
                "thermostatHeatingSetpoint": {"heatingSetpoint": 66},
                "thermostatCoolingSetpoint": {"coolingSetpoint": 75},
                "thermostatFanMode": {"thermostatFanMode": "circulate"},
                "thermostatOperatingState": {"thermostatOperatingState": "cooling"},
            },
        )

        device = engine.normalize(record)

        assert isinstance(device, ThermostatDevice)
        assert device.mode == ThermostatMode.COOL
        assert device.heating_setpoint == 66
        assert device.cooling_setpoint == 75
        assert device.target_temperature == 75
        assert device.fan_mode == FanMode.CIRCULATE
        assert device.is_cooling is True
        assert device.is_fan_running is True

    def test_light_hue_scaled_from_percent(self, engine):
        """Test vendor hue percentages become degrees."""
        record = VendorDeviceRecord(
            vendor="smartthings",
            device_id="l1",
            capabilities=["switch", "switchLevel", "colorControl"],
            attributes={
                "switch": {"switch": "on"},
                "switchLevel": {"level": 40},
                "colorControl": {"hue": 50, "saturation": 80},
            },
        )

        device = engine.normalize(record)

        assert isinstance(device, LightDevice)
        assert device.is_on is True
        assert device.brightness == 40
        assert device.color.hue == pytest.approx(180.0)
        assert device.supports_color and device.supports_dimming

    def test_outlet_switch_type(self, engine):
        record = VendorDeviceRecord(
            vendor="smartthings",
            device_id="s1",
            capabilities=["switch", "powerMeter"],
            attributes={"switch": {"switch": "off"}},
        )

        device = engine.normalize(record)

        assert isinstance(device, SwitchDevice)
        assert device.switch_type == SwitchType.OUTLET
        assert device.is_on is False

    def test_generic_keeps_attributes(self, engine):
        """Test unrecognized devices keep flattened attributes."""
        record = VendorDeviceRecord(
            vendor="smartthings",
            device_id="g1",
            capabilities=["waterSensor"],
            attributes={"waterSensor": {"water": "dry"}},
        )

        device = engine.normalize(record)

        assert isinstance(device, GenericDevice)
        assert device.attributes == {"waterSensor.water": "dry"}

    def test_non_numeric_values_ignored(self, engine):
        record = VendorDeviceRecord(
            vendor="yale",
            device_id="l2",
            capabilities=["lock", "battery"],
            attributes={"battery": {"battery": "unknown"}},
        )

        device = engine.normalize(record)

        assert device.battery_level is None
        assert device.lock_state == LockState.UNKNOWN

    def test_missing_id_raises(self, engine):
        with pytest.raises(MappingError):
            engine.normalize(VendorDeviceRecord(vendor="yale", device_id=""))

    def test_normalize_many_skips_bad_records(self, engine):
        records = [
            VendorDeviceRecord(vendor="yale", device_id=""),
            VendorDeviceRecord(vendor="yale", device_id="ok", capabilities=["lock"]),
        ]
        assert [d.id for d in engine.normalize_many(records)] == ["ok"]


class TestApplyAttribute:
    """Test pushed attribute updates."""

    def test_lock_event(self, engine, lock_device):
        updated = engine.apply_attribute(lock_device, "lock", "lock", "unlocked")
        assert updated.lock_state == LockState.UNLOCKED
        assert lock_device.lock_state == LockState.LOCKED

    def test_thermostat_setpoint_event_updates_target(self, engine, thermostat_device):
        updated = engine.apply_attribute(
            thermostat_device, "thermostatHeatingSetpoint", "heatingSetpoint", 72
        )
        assert updated.heating_setpoint == 72
        assert updated.target_temperature == 72

    def test_unrelated_event_ignored(self, engine, light_device):
        updated = engine.apply_attribute(light_device, "lock", "lock", "locked")
        assert updated.model_dump() == light_device.model_dump()


class TestParsers:
    """Test value parsers."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("locked", LockState.LOCKED),
            ("kAugLockState_Unlocked", LockState.UNLOCKED),
            ("jammed", LockState.JAMMED),
            ("kAugLockState_Jammed", LockState.JAMMED),
            ("kAugLockState_Unknown", LockState.UNKNOWN),
            (None, LockState.UNKNOWN),
        ],
    )
    def test_lock_state(self, value, expected):
        assert parse_lock_state(value) == expected

    def test_timestamps(self):
        expected = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert parse_timestamp("2026-01-15T12:00:00Z") == expected
        assert parse_timestamp(expected.timestamp()) == expected
        assert parse_timestamp(expected.timestamp() * 1000) == expected
        assert parse_timestamp("not a date") is None

    @pytest.mark.parametrize(
        "value,expected",
        [
            (True, True),
            (False, False),
            ("true", True),
            ("False", False),
            (" yes ", True),
            ("0", False),
            (1, True),
            (0, False),
            ("sometimes", False),
            (None, True),
        ],
    )
    def test_flag(self, value, expected):
        assert parse_flag(value, True) is expected


class TestShapeChecks:
    """Test JSON shape checks used by the vendor adapters."""

    def test_object(self):
        assert expect_object({"a": 1}, "body", "acme") == {"a": 1}

    def test_object_wrong_type(self):
        with pytest.raises(MappingError, match="body is not an object \\(got list\\)"):
            expect_object([1], "body", "acme")

    def test_optional_object(self):
        assert expect_object(None, "body", "acme", optional=True) == {}
        with pytest.raises(MappingError):
            expect_object(None, "body", "acme")

    def test_list(self):
        assert expect_list(None, "items", "acme") == []
        assert expect_list([1, 2], "items", "acme") == [1, 2]

    def test_list_wrong_type(self):
        with pytest.raises(MappingError, match="items is not a list"):
            expect_list({"a": 1}, "items", "acme")
