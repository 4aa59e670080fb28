"""Pytest configuration and shared fixtures for device gateway tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from prometheus_client import CollectorRegistry

from device_gateway.adapters.mock import MockAdapter
from device_gateway.adapters.mock.fixtures import MOCK_PROPERTY, MOCK_UNIT
from device_gateway.core.models import (
    DeviceOperation,
    EntityType,
    LightDevice,
    LockDevice,
    LockState,
    Role,
    RoleAssociation,
    ThermostatDevice,
    ThermostatMode,
    UserContext,
)
from device_gateway.services.audit import AuditLogger, MetricsRecorder
from device_gateway.services.authorization import AuthorizationService
from device_gateway.services.device_manager import DeviceManager
from device_gateway.services.rate_limiter import RateLimiter

BASE_TIME = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock.

    Calling the instance returns monotonic seconds; `utc()` returns the
    matching wall-clock datetime.
    """

    def __init__(self, start: float = 1000.0) -> None:
        self.start = start
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds

    def utc(self) -> datetime:
        return BASE_TIME + timedelta(seconds=self.value - self.start)


class FakeSleep:
    """Records requested delays and advances a FakeClock instead of sleeping."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)
        await asyncio.sleep(0)


class StaticPresence:
    """Proof-of-presence provider with a fixed answer."""

    def __init__(self, confirmed: bool = True) -> None:
        self.confirmed = confirmed
        self.calls: list[tuple[str, str, DeviceOperation]] = []

    async def confirm(self, user, device, operation) -> bool:
        self.calls.append((user.user_id, device.id, operation))
        return self.confirmed


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(clock: FakeClock) -> FakeSleep:
    return FakeSleep(clock)


@pytest.fixture
def audit() -> AuditLogger:
    """Audit logger backed by a fresh prometheus registry."""
    return AuditLogger(metrics=MetricsRecorder(CollectorRegistry()))


@pytest.fixture
def make_user() -> Callable[..., UserContext]:
    """Factory for users holding a single role.

    Returns:
        Callable(user_id, role, entity_type, entity_id) -> UserContext
    """

    def _make(
        user_id: str,
        role: Role | None = None,
        entity_type: EntityType = EntityType.UNIT,
        entity_id: str = MOCK_UNIT,
        **kwargs: Any,
    ) -> UserContext:
        roles = []
        if role is not None:
            roles.append(
                RoleAssociation(entity_type=entity_type, entity_id=entity_id, role=role)
            )
        return UserContext(user_id=user_id, roles=roles, **kwargs)

    return _make


@pytest.fixture
def tenant(make_user) -> UserContext:
    """Tenant of the mock unit."""
    return make_user("tenant-1", Role.TENANT)


@pytest.fixture
def lock_device() -> LockDevice:
    return LockDevice(
        id="lock-1",
        vendor="mock",
        name="Front Door",
        lock_state=LockState.LOCKED,
        battery_level=80,
        property_id=MOCK_PROPERTY,
        unit_id=MOCK_UNIT,
    )


@pytest.fixture
def thermostat_device() -> ThermostatDevice:
    return ThermostatDevice(
        id="thermostat-1",
        vendor="mock",
        name="Hall Thermostat",
        current_temperature=68.0,
        heating_setpoint=70.0,
        cooling_setpoint=76.0,
        target_temperature=70.0,
        mode=ThermostatMode.HEAT,
        property_id=MOCK_PROPERTY,
        unit_id=MOCK_UNIT,
    )


@pytest.fixture
def light_device() -> LightDevice:
    return LightDevice(
        id="light-1",
        vendor="mock",
        name="Desk Lamp",
        brightness=50,
        supports_dimming=True,
        supports_color=True,
        property_id=MOCK_PROPERTY,
        unit_id=MOCK_UNIT,
    )


@pytest.fixture
async def mock_adapter() -> MockAdapter:
    """Initialized mock adapter with the default fixture devices."""
    adapter = MockAdapter()
    await adapter.initialize()
    return adapter


@pytest.fixture
def presence() -> StaticPresence:
    return StaticPresence(confirmed=True)


@pytest.fixture
async def manager(audit, mock_adapter, presence) -> DeviceManager:
    """Device manager over the mock adapter, with discovery already run."""
    manager = DeviceManager(
        authorization=AuthorizationService(audit, proof_of_presence=presence),
        rate_limiter=RateLimiter(min_interval=0.0),
        audit=audit,
        settle_delay=0.0,
        deadline=5.0,
    )
    manager.add_adapter(mock_adapter)
    await manager.fetch_all_devices()
    return manager
