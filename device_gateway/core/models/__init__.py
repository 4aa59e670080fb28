"""Vendor-agnostic models for devices, commands, credentials and access.

These models are the common language between vendor adapters, the
command dispatcher and callers of the gateway.
"""

from device_gateway.core.models.access import (
    DeviceOperation,
    EntityType,
    GuestGrant,
    Role,
    RoleAssociation,
    TenancyScope,
    UserContext,
)
from device_gateway.core.models.command import (
    CommandExecution,
    DeviceCommand,
    ExecuteCustom,
    ExecutionState,
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
    parse_command,
)
from device_gateway.core.models.device import (
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
    parse_device,
)
from device_gateway.core.models.token import TokenRecord

__all__ = [
    "AccessRecord",
    "CommandExecution",
    "DeviceCommand",
    "DeviceEnvelope",
    "DeviceKind",
    "DeviceOperation",
    "EntityType",
    "ExecuteCustom",
    "ExecutionState",
    "FanMode",
    "GenericDevice",
    "GuestGrant",
    "LightColor",
    "LightDevice",
    "LockCommand",
    "LockDevice",
    "LockState",
    "Role",
    "RoleAssociation",
    "SetAttribute",
    "SetBrightness",
    "SetColor",
    "SetCoolingSetpoint",
    "SetFanMode",
    "SetHeatingSetpoint",
    "SetMode",
    "SetSwitch",
    "SetTemperature",
    "SwitchDevice",
    "SwitchType",
    "TenancyScope",
    "ThermostatDevice",
    "ThermostatMode",
    "TokenRecord",
    "TurnOff",
    "TurnOn",
    "UnifiedDevice",
    "UnlockCommand",
    "UserContext",
    "parse_command",
    "parse_device",
]
