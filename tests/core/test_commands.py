"""Tests for device commands and command execution tracking."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from device_gateway.core.models import (
    CommandExecution,
    ExecutionState,
    LockCommand,
    SetBrightness,
    SetColor,
    SetMode,
    ThermostatMode,
    parse_command,
)


class TestParseCommand:
    """Test DeviceCommand discrimination."""

    def test_parse_by_type(self):
        """Test the type field selects the command class."""
        command = parse_command({"type": "set_mode", "mode": "cool"})
        assert isinstance(command, SetMode)
        assert command.mode == ThermostatMode.COOL

    def test_brightness_clamped(self):
        """Test brightness levels are clamped to 0-100."""
        assert parse_command({"type": "set_brightness", "level": 150}).level == 100
        assert SetBrightness(level=-5).level == 0

    def test_unknown_type_rejected(self):
        """Test unknown command types fail validation."""
        with pytest.raises(ValidationError):
            parse_command({"type": "self_destruct"})

    def test_commands_are_immutable(self):
        """Test commands cannot be modified after creation."""
        command = SetBrightness(level=40)
        with pytest.raises(ValidationError):
            command.level = 10

    def test_set_color_builds_clamped_color(self):
        """Test SetColor exposes a clamped LightColor."""
        color = SetColor(hue=500, saturation=50, brightness=120).color
        assert color.hue == 360
        assert color.brightness == 100


class TestCommandExecution:
    """Test the execution state machine."""

    def test_happy_path(self):
        """Test the full successful transition sequence."""
        execution = CommandExecution(
            device_id="d1", command=LockCommand(), actor_id="u1"
        )
        for state in (
            ExecutionState.AUTHORIZED,
            ExecutionState.DISPATCHED,
            ExecutionState.AWAITING_VERIFICATION,
            ExecutionState.VERIFIED,
        ):
            execution.advance(state)

        assert execution.is_finished
        assert execution.finished_at is not None
        assert execution.history[0] == ExecutionState.PENDING
        assert execution.history[-1] == ExecutionState.VERIFIED

    def test_illegal_transition(self):
        """Test skipping states raises ValueError."""
        execution = CommandExecution(
            device_id="d1", command=LockCommand(), actor_id="u1"
        )
        with pytest.raises(ValueError, match="Illegal transition"):
            execution.advance(ExecutionState.VERIFIED)

    def test_terminal_state_is_final(self):
        """Test no transition leaves a terminal state."""
        execution = CommandExecution(
            device_id="d1", command=LockCommand(), actor_id="u1"
        )
        execution.advance(ExecutionState.DENIED)
        with pytest.raises(ValueError):
            execution.advance(ExecutionState.AUTHORIZED)

    def test_timeout_allowed_from_pending(self):
        """Test a command can time out before authorization completes."""
        execution = CommandExecution(
            device_id="d1", command=LockCommand(), actor_id="u1"
        )
        execution.advance(ExecutionState.TIMED_OUT)
        assert execution.is_finished
