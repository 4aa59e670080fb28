"""In-memory mock vendor adapter.

Simulates a vendor cloud for development and tests, with optional
latency, random command failures and devices that ignore commands.
"""

from __future__ import annotations

import asyncio
import logging
import random

from device_gateway.adapters.base import AdapterContext
from device_gateway.adapters.mock.fixtures import MOCK_VENDOR, default_devices
from device_gateway.config.settings import VendorConfig
from device_gateway.core.errors import (
    AuthenticationRequired,
    CommandFailed,
    DeviceNotFound,
)
from device_gateway.core.models.command import DeviceCommand
from device_gateway.core.models.device import UnifiedDevice
from device_gateway.core.models.token import TokenRecord
from device_gateway.services.command_effects import apply_command

logger = logging.getLogger(__name__)


class MockAdapter:
    """Mock vendor adapter.

    Configuration:
        devices: Initial devices (default: fixtures.default_devices())
        latency_ms: Simulated network latency in milliseconds (default: 0)
        failure_rate: Probability a command fails (0.0-1.0, default: 0.0)
        sticky_devices: Ids of devices that accept commands without
            changing state, for exercising verification failures

    Example:
        >>> adapter = MockAdapter(latency_ms=50, failure_rate=0.1)
        >>> await adapter.initialize()
        >>> devices = await adapter.fetch_devices()
    """

    def __init__(
        self,
        devices: list[UnifiedDevice] | None = None,
        latency_ms: float = 0,
        failure_rate: float = 0.0,
        sticky_devices: set[str] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.latency_ms = latency_ms
        self.failure_rate = failure_rate
        self.sticky_devices = set(sticky_devices or ())
        self.commands: list[tuple[str, DeviceCommand]] = []
        self._initial = [d.snapshot() for d in (devices or default_devices())]
        self._devices: dict[str, UnifiedDevice] = {}
        self._rng = rng or random.Random()
        self._initialized = False
        self.reset()

        logger.info(
            f"MockAdapter initialized: {len(self._devices)} devices, "
            f"latency={self.latency_ms}ms, failure_rate={self.failure_rate}"
        )

    @classmethod
    def create(cls, vendor: VendorConfig, context: AdapterContext) -> MockAdapter:
        return cls(devices=default_devices(context.normalization))

    @property
    def name(self) -> str:
        return MOCK_VENDOR

    async def initialize(self, token: TokenRecord | None = None) -> None:
        await self._simulate_latency()
        self._initialized = True
        logger.info("MockAdapter ready")

    async def fetch_devices(self) -> list[UnifiedDevice]:
        await self._ready()
        return [d.snapshot() for d in self._devices.values()]

    async def get_device_state(self, device_id: str) -> UnifiedDevice:
        await self._ready()
        device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFound(device_id, MOCK_VENDOR)
        return device.snapshot()

    async def execute_command(
        self, device_id: str, command: DeviceCommand
    ) -> UnifiedDevice:
        await self._ready()
        device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFound(device_id, MOCK_VENDOR)
        if self._should_fail():
            logger.warning(f"Simulated failure for {command.type} on {device_id}")
            raise CommandFailed("Simulated failure", MOCK_VENDOR)

        self.commands.append((device_id, command))
        expected = apply_command(device, command)
        if device_id in self.sticky_devices:
            logger.info(f"MockAdapter ignored {command.type} on sticky {device_id}")
            return device.snapshot()

        self._devices[device_id] = expected
        logger.info(f"MockAdapter executed: {command.type} on {device_id}")
        return expected.snapshot()

    async def revoke_authentication(self) -> None:
        self._initialized = False
        logger.info("MockAdapter credentials revoked")

    async def close(self) -> None:
        self._initialized = False

    def set_device(self, device: UnifiedDevice) -> None:
        """Replace a device's vendor-side state (for testing)."""
        self._devices[device.id] = device.snapshot()

    def reset(self) -> None:
        """Restore the initial devices."""
        self._devices = {d.id: d.snapshot() for d in self._initial}
        self.commands.clear()

    async def _ready(self) -> None:
        if not self._initialized:
            raise AuthenticationRequired("Mock adapter is not initialized", MOCK_VENDOR)
        await self._simulate_latency()

    async def _simulate_latency(self) -> None:
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000)

    def _should_fail(self) -> bool:
        if self.failure_rate <= 0:
            return False
        return self._rng.random() < self.failure_rate
