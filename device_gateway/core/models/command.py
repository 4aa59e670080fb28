"""Device commands and command execution tracking.

Commands carry no device reference; the dispatcher receives the target
id separately.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from device_gateway.core.models.access import utcnow
from device_gateway.core.models.device import FanMode, LightColor, ThermostatMode


class _Command(BaseModel):
    model_config = ConfigDict(frozen=True)


class LockCommand(_Command):
    type: Literal["lock"] = "lock"


class UnlockCommand(_Command):
    type: Literal["unlock"] = "unlock"


class SetTemperature(_Command):
    type: Literal["set_temperature"] = "set_temperature"
    value: float


class SetMode(_Command):
    type: Literal["set_mode"] = "set_mode"
    mode: ThermostatMode


class SetFanMode(_Command):
    type: Literal["set_fan_mode"] = "set_fan_mode"
    mode: FanMode


class SetHeatingSetpoint(_Command):
    type: Literal["set_heating_setpoint"] = "set_heating_setpoint"
    value: float


class SetCoolingSetpoint(_Command):
    type: Literal["set_cooling_setpoint"] = "set_cooling_setpoint"
    value: float


class TurnOn(_Command):
    type: Literal["turn_on"] = "turn_on"


class TurnOff(_Command):
    type: Literal["turn_off"] = "turn_off"


class SetBrightness(_Command):
    type: Literal["set_brightness"] = "set_brightness"
    level: int

    @field_validator("level")
    @classmethod
    def clamp_level(cls, v: int) -> int:
        return max(0, min(100, v))


class SetColor(_Command):
    type: Literal["set_color"] = "set_color"
    hue: float
    saturation: float
    brightness: float

    @property
    def color(self) -> LightColor:
        return LightColor(
            hue=self.hue, saturation=self.saturation, brightness=self.brightness
        )


class SetSwitch(_Command):
    type: Literal["set_switch"] = "set_switch"
    on: bool


class SetAttribute(_Command):
    type: Literal["set_attribute"] = "set_attribute"
    key: str = Field(..., min_length=1)
    value: Any = None


class ExecuteCustom(_Command):
    type: Literal["execute_custom"] = "execute_custom"
    name: str = Field(..., min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)


DeviceCommand = Annotated[
    Union[
        LockCommand,
        UnlockCommand,
        SetTemperature,
        SetMode,
        SetFanMode,
        SetHeatingSetpoint,
        SetCoolingSetpoint,
        TurnOn,
        TurnOff,
        SetBrightness,
        SetColor,
        SetSwitch,
        SetAttribute,
        ExecuteCustom,
    ],
    Field(discriminator="type"),
]

_command_adapter: TypeAdapter[DeviceCommand] = TypeAdapter(DeviceCommand)


def parse_command(data: dict[str, Any]) -> DeviceCommand:
    """Validate a serialized command, e.g. ``{"type": "set_brightness", "level": 40}``."""
    return _command_adapter.validate_python(data)


class ExecutionState(str, Enum):
    """States of a single command execution."""

    PENDING = "pending"
    AUTHORIZED = "authorized"
    DISPATCHED = "dispatched"
    AWAITING_VERIFICATION = "awaiting_verification"
    VERIFIED = "verified"
    VERIFICATION_FAILED = "verification_failed"
    DENIED = "denied"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset(
    {
        ExecutionState.VERIFIED,
        ExecutionState.VERIFICATION_FAILED,
        ExecutionState.DENIED,
        ExecutionState.FAILED,
        ExecutionState.TIMED_OUT,
    }
)

_TRANSITIONS: dict[ExecutionState, frozenset[ExecutionState]] = {
    ExecutionState.PENDING: frozenset(
        {
            ExecutionState.AUTHORIZED,
            ExecutionState.DENIED,
            ExecutionState.FAILED,
            ExecutionState.TIMED_OUT,
        }
    ),
    ExecutionState.AUTHORIZED: frozenset(
        {ExecutionState.DISPATCHED, ExecutionState.FAILED, ExecutionState.TIMED_OUT}
    ),
    ExecutionState.DISPATCHED: frozenset(
        {
            ExecutionState.AWAITING_VERIFICATION,
            ExecutionState.FAILED,
            ExecutionState.TIMED_OUT,
        }
    ),
    ExecutionState.AWAITING_VERIFICATION: frozenset(
        {
            ExecutionState.VERIFIED,
            ExecutionState.VERIFICATION_FAILED,
            ExecutionState.TIMED_OUT,
        }
    ),
}


class CommandExecution(BaseModel):
    """Progress of one command through the dispatcher.

    Attributes:
        execution_id: Unique id for correlating audit events
        device_id: Target device
        command: Command being executed
        actor_id: User issuing the command
        state: Current execution state
        history: States visited, in order
        error: Sanitized error message for failed executions
    """

    execution_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    device_id: str
    command: DeviceCommand
    actor_id: str
    state: ExecutionState = ExecutionState.PENDING
    history: list[ExecutionState] = Field(
        default_factory=lambda: [ExecutionState.PENDING]
    )
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: datetime | None = None
    error: str | None = None
    access_recorded: bool = False

    @property
    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, new_state: ExecutionState) -> None:
        """Move to a new state.

        Raises:
            ValueError: If the transition is not allowed
        """
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise ValueError(
                f"Illegal transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)
        if new_state in TERMINAL_STATES:
            self.finished_at = utcnow()
