"""Default devices for the mock vendor.

Built from vendor-style records so they pass through the same
normalization path as real vendor payloads.
"""

from __future__ import annotations

from device_gateway.core.models.device import UnifiedDevice
from device_gateway.services.normalization import NormalizationEngine, VendorDeviceRecord

MOCK_VENDOR = "mock"
MOCK_PROPERTY = "property-1"
MOCK_UNIT = "unit-101"

DEFAULT_RECORDS: list[VendorDeviceRecord] = [
    VendorDeviceRecord(
        vendor=MOCK_VENDOR,
        device_id="mock-lock-front",
        name="Front Door",
        capabilities=["lock", "battery"],
        attributes={"lock": {"lock": "locked"}, "battery": {"battery": 87}},
        location="Entrance",
        manufacturer="Mock",
        model="Deadbolt 2",
        property_id=MOCK_PROPERTY,
        unit_id=MOCK_UNIT,
    ),
    VendorDeviceRecord(
        vendor=MOCK_VENDOR,
        device_id="mock-thermostat-living",
        name="Living Room Thermostat",
        capabilities=[
            "temperatureMeasurement",
            "thermostatMode",
            "thermostatFanMode",
            "thermostatHeatingSetpoint",
            "thermostatCoolingSetpoint",
        ],
        attributes={
            "temperatureMeasurement": {"temperature": 68},
            "thermostatMode": {"thermostatMode": "heat"},
            "thermostatFanMode": {"thermostatFanMode": "auto"},
            "thermostatHeatingSetpoint": {"heatingSetpoint": 70},
            "thermostatCoolingSetpoint": {"coolingSetpoint": 76},
        },
        location="Living Room",
        manufacturer="Mock",
        property_id=MOCK_PROPERTY,
        unit_id=MOCK_UNIT,
    ),
    VendorDeviceRecord(
        vendor=MOCK_VENDOR,
        device_id="mock-light-hallway",
        name="Hallway Light",
        capabilities=["switch", "switchLevel", "colorControl"],
        attributes={
            "switch": {"switch": "off"},
            "switchLevel": {"level": 60},
            "colorControl": {"hue": 10, "saturation": 80},
        },
        location="Hallway",
        manufacturer="Mock",
        property_id=MOCK_PROPERTY,
        unit_id=MOCK_UNIT,
    ),
    VendorDeviceRecord(
        vendor=MOCK_VENDOR,
        device_id="mock-outlet-kitchen",
        name="Kitchen Outlet",
        capabilities=["switch", "outlet", "powerMeter"],
        attributes={"switch": {"switch": "on"}},
        location="Kitchen",
        manufacturer="Mock",
        property_id=MOCK_PROPERTY,
        unit_id=MOCK_UNIT,
    ),
    VendorDeviceRecord(
        vendor=MOCK_VENDOR,
        device_id="mock-sensor-basement",
        name="Basement Leak Sensor",
        capabilities=["waterSensor"],
        attributes={"waterSensor": {"water": "dry"}},
        location="Basement",
        manufacturer="Mock",
        property_id=MOCK_PROPERTY,
    ),
]


def default_devices(
    normalization: NormalizationEngine | None = None,
) -> list[UnifiedDevice]:
    """Normalize the default records into fresh device instances."""
    engine = normalization or NormalizationEngine()
    return engine.normalize_many(DEFAULT_RECORDS)
