"""Tests for command dispatch, verification and access records."""

from __future__ import annotations

import asyncio

import pytest

from device_gateway.adapters.mock import MockAdapter
from device_gateway.core.errors import (
    CommandFailed,
    CommandNotSupported,
    CommandTimeout,
    DeviceOffline,
    PermissionDenied,
    ProofOfPresenceFailed,
    StateVerificationFailed,
)
from device_gateway.core.models import (
    DeviceOperation,
    ExecutionState,
    LockCommand,
    LockState,
    SetBrightness,
    SetTemperature,
    UnlockCommand,
)
from device_gateway.services.authorization import AuthorizationService
from device_gateway.services.device_manager import DeviceManager
from device_gateway.services.events import DeviceEventType
from device_gateway.services.rate_limiter import RateLimiter

LOCK_ID = "mock-lock-front"


@pytest.fixture
def build_manager(audit, presence):
    """Factory for a manager over a custom mock adapter."""

    async def _build(adapter: MockAdapter, deadline: float = 5.0) -> DeviceManager:
        manager = DeviceManager(
            authorization=AuthorizationService(audit, proof_of_presence=presence),
            rate_limiter=RateLimiter(min_interval=0.0),
            audit=audit,
            settle_delay=0.0,
            deadline=deadline,
        )
        await adapter.initialize()
        manager.add_adapter(adapter)
        await manager.fetch_all_devices()
        return manager

    return _build


def access_history(manager: DeviceManager):
    return manager.get_cached(LOCK_ID).access_history


class TestSuccessfulCommands:
    """Test the verified happy path."""

    @pytest.mark.asyncio
    async def test_unlock_verified(self, manager, tenant, presence, audit):
        """Test unlock passes presence, verifies and records one access."""
        result = await manager.execute_command_with_trace(LOCK_ID, UnlockCommand(), tenant)

        assert result.device.lock_state == LockState.UNLOCKED
        assert result.execution.history == [
            ExecutionState.PENDING,
            ExecutionState.AUTHORIZED,
            ExecutionState.DISPATCHED,
            ExecutionState.AWAITING_VERIFICATION,
            ExecutionState.VERIFIED,
        ]
        assert presence.calls == [("tenant-1", LOCK_ID, DeviceOperation.UNLOCK)]

        history = access_history(manager)
        assert len(history) == 1
        assert history[0].success is True
        assert history[0].actor_id == "tenant-1"

        event = audit.recent_events[-1]
        assert event.category.value == "security"
        assert event.action == "unlock"
        assert event.outcome.value == "success"

    @pytest.mark.asyncio
    async def test_lock_skips_presence(self, manager, tenant, presence):
        await manager.execute_command(LOCK_ID, LockCommand(), tenant)
        assert presence.calls == []
        assert len(access_history(manager)) == 1

    @pytest.mark.asyncio
    async def test_light_brightness(self, manager, tenant):
        device = await manager.execute_command(
            "mock-light-hallway", SetBrightness(level=30), tenant
        )
        assert device.brightness == 30
        assert device.is_on is True

    @pytest.mark.asyncio
    async def test_subscribers_receive_verified_state(self, manager, tenant):
        """Test a verified change is published even when it matches the optimistic state."""
        queue = manager.subscribe()

        await manager.execute_command(LOCK_ID, UnlockCommand(), tenant)

        event = queue.get_nowait()
        assert event.type == DeviceEventType.UPDATED
        assert event.device.lock_state == LockState.UNLOCKED


class TestRejectedCommands:
    """Test commands stopped before dispatch."""

    @pytest.mark.asyncio
    async def test_presence_declined(self, manager, tenant, presence, mock_adapter):
        presence.confirmed = False

        with pytest.raises(ProofOfPresenceFailed):
            await manager.execute_command(LOCK_ID, UnlockCommand(), tenant)

        assert mock_adapter.commands == []
        history = access_history(manager)
        assert len(history) == 1
        assert history[0].success is False
        assert manager.get_cached(LOCK_ID).lock_state == LockState.LOCKED

    @pytest.mark.asyncio
    async def test_permission_denied(self, manager, make_user, mock_adapter, audit):
        stranger = make_user("stranger")

        with pytest.raises(PermissionDenied):
            await manager.execute_command(LOCK_ID, LockCommand(), stranger)

        assert mock_adapter.commands == []
        assert audit.recent_events[-1].metadata["state"] == "denied"

    @pytest.mark.asyncio
    async def test_offline_device(self, manager, tenant, mock_adapter):
        """Test offline devices are rejected before authorization."""
        await manager.update_device_health(LOCK_ID, False)

        with pytest.raises(DeviceOffline):
            await manager.execute_command(LOCK_ID, LockCommand(), tenant)

        assert mock_adapter.commands == []

    @pytest.mark.asyncio
    async def test_unsupported_command(self, manager, tenant):
        with pytest.raises(CommandNotSupported):
            await manager.execute_command(LOCK_ID, SetTemperature(value=70), tenant)


class TestFailures:
    """Test failures after dispatch."""

    @pytest.mark.asyncio
    async def test_vendor_failure_keeps_state(self, build_manager, tenant):
        manager = await build_manager(MockAdapter(failure_rate=1.0))

        with pytest.raises(CommandFailed):
            await manager.execute_command(LOCK_ID, UnlockCommand(), tenant)

        assert manager.get_cached(LOCK_ID).lock_state == LockState.LOCKED
        assert access_history(manager)[0].success is False

    @pytest.mark.asyncio
    async def test_verification_mismatch_reverts(self, build_manager, tenant, audit):
        """Test a device that ignores the command fails verification."""
        manager = await build_manager(MockAdapter(sticky_devices={LOCK_ID}))

        with pytest.raises(StateVerificationFailed):
            await manager.execute_command(LOCK_ID, UnlockCommand(), tenant)

        cached = manager.get_cached(LOCK_ID)
        assert cached.lock_state == LockState.LOCKED
        assert len(cached.access_history) == 1
        assert cached.access_history[0].success is False
        assert "verification" in cached.access_history[0].failure_reason.lower()
        event = audit.recent_events[-1]
        assert event.outcome.value == "failed"
        assert event.metadata["state"] == "verification_failed"

    @pytest.mark.asyncio
    async def test_deadline_exceeded(self, build_manager, tenant, audit):
        """Test the caller gets CommandTimeout and the command finishes later."""
        manager = await build_manager(MockAdapter(latency_ms=100), deadline=0.05)

        with pytest.raises(CommandTimeout):
            await manager.execute_command(LOCK_ID, UnlockCommand(), tenant)

        history = access_history(manager)
        assert len(history) == 1
        assert history[0].success is False
        assert audit.recent_events[-1].metadata["state"] == "timed_out"

        await asyncio.sleep(0.5)

        assert manager.get_cached(LOCK_ID).lock_state == LockState.UNLOCKED
        assert len(access_history(manager)) == 1
