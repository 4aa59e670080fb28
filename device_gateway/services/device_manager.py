"""Caller-facing device operations.

DeviceManager owns the local device snapshots. Callers always receive
copies; changes are announced on the DeviceEventBus.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from device_gateway.core.errors import DeviceNotFound, InvalidDeviceId
from device_gateway.core.interfaces.adapter import VendorAdapter
from device_gateway.core.models.access import TenancyScope, UserContext
from device_gateway.core.models.command import DeviceCommand
from device_gateway.core.models.device import (
    AccessRecord,
    LockDevice,
    UnifiedDevice,
)
from device_gateway.services.audit import AuditCategory, AuditLogger, AuditOutcome
from device_gateway.services.authorization import AuthorizationService
from device_gateway.services.dispatcher import CommandDispatcher, CommandResult
from device_gateway.services.events import DeviceEvent, DeviceEventBus, DeviceEventType
from device_gateway.services.normalization import NormalizationEngine
from device_gateway.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

HEALTHY_STATES = {"online", "healthy", "true", "1"}


def _merge_history(old: LockDevice, new: LockDevice) -> None:
    """Keep locally recorded access history on a vendor snapshot."""
    seen = {(r.timestamp, r.operation, r.actor_id) for r in new.access_history}
    merged = list(new.access_history) + [
        r for r in old.access_history if (r.timestamp, r.operation, r.actor_id) not in seen
    ]
    new.access_history = sorted(merged, key=lambda r: r.timestamp)


class DeviceManager:
    """Aggregates vendor adapters behind one device API.

    Attributes:
        events: Channel publishing device change notifications
        dispatcher: Command pipeline used by execute_command()
    """

    def __init__(
        self,
        authorization: AuthorizationService,
        rate_limiter: RateLimiter,
        audit: AuditLogger,
        events: DeviceEventBus | None = None,
        normalization: NormalizationEngine | None = None,
        settle_delay: float = 2.0,
        deadline: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._adapters: dict[str, VendorAdapter] = {}
        self._devices: dict[str, UnifiedDevice] = {}
        self._rate_limiter = rate_limiter
        self._audit = audit
        self.events = events or DeviceEventBus()
        self.normalization = normalization or NormalizationEngine()
        self.dispatcher = CommandDispatcher(
            adapters=self._adapters,
            store=self,
            authorization=authorization,
            rate_limiter=rate_limiter,
            audit=audit,
            settle_delay=settle_delay,
            deadline=deadline,
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # Adapters
    # ------------------------------------------------------------------

    def add_adapter(self, adapter: VendorAdapter) -> None:
        if adapter.name in self._adapters:
            logger.warning(f"Adapter '{adapter.name}' already added, replacing")
        self._adapters[adapter.name] = adapter
        logger.info(f"Added vendor adapter: {adapter.name}")

    @property
    def adapter_names(self) -> list[str]:
        return list(self._adapters)

    async def close(self) -> None:
        for adapter in self._adapters.values():
            try:
                await adapter.close()
            except Exception as e:
                logger.error(f"Error closing adapter {adapter.name}: {e}")

    # ------------------------------------------------------------------
    # Caller-facing operations
    # ------------------------------------------------------------------

    @property
    def devices(self) -> list[UnifiedDevice]:
        """Snapshots of all tracked devices."""
        return [d.snapshot() for d in self._devices.values()]

    def get_cached(self, device_id: str) -> UnifiedDevice | None:
        device = self._devices.get(device_id)
        return device.snapshot() if device else None

    async def fetch_all_devices(self) -> list[UnifiedDevice]:
        """Fetch devices from every adapter concurrently.

        A failing adapter is logged and skipped; its devices keep their
        last known state.

        Returns:
            Snapshots of all devices fetched in this call

        Raises:
            DeviceGatewayError: If every adapter failed
        """
        if not self._adapters:
            return []

        adapters = list(self._adapters.values())
        with self._audit.timed("fetch_all_devices"):
            results = await asyncio.gather(
                *(adapter.fetch_devices() for adapter in adapters),
                return_exceptions=True,
            )

        fetched: list[UnifiedDevice] = []
        errors: list[BaseException] = []
        for adapter, result in zip(adapters, results):
            if isinstance(result, BaseException):
                errors.append(result)
                logger.error(f"Failed to fetch devices from {adapter.name}: {result}")
                self._audit.record(
                    AuditCategory.DEVICE_CONTROL, "fetch_devices", AuditOutcome.FAILED,
                    vendor=adapter.name, error=result,
                )
                continue
            for device in result:
                await self.commit(device, publish=True)
                fetched.append(self._devices[device.id].snapshot())
            self._audit.record(
                AuditCategory.DEVICE_CONTROL, "fetch_devices", AuditOutcome.SUCCESS,
                vendor=adapter.name, count=len(result),
            )

        if errors and len(errors) == len(adapters):
            raise errors[0]
        return fetched

    async def get_device_state(self, device_id: str) -> UnifiedDevice:
        """Fetch fresh state for one device from its vendor.

        Unknown ids are tried against every adapter in turn.

        Raises:
            DeviceNotFound: If no adapter knows the device
        """
        known = self._devices.get(device_id)
        if known is not None and known.vendor in self._adapters:
            candidates = [self._adapters[known.vendor]]
        else:
            candidates = list(self._adapters.values())

        for adapter in candidates:
            try:
                await self._rate_limiter.acquire(device_id)
                device = await adapter.get_device_state(device_id)
            except (DeviceNotFound, InvalidDeviceId):
                continue
            await self.commit(device, publish=True)
            return self._devices[device.id].snapshot()
        raise DeviceNotFound(device_id)

    async def execute_command(
        self, device_id: str, command: DeviceCommand, user: UserContext
    ) -> UnifiedDevice:
        """Authorize, send and verify a command.

        Returns:
            Vendor-confirmed device state
        """
        result = await self.execute_command_with_trace(device_id, command, user)
        return result.device

    async def execute_command_with_trace(
        self, device_id: str, command: DeviceCommand, user: UserContext
    ) -> CommandResult:
        return await self.dispatcher.execute(device_id, command, user)

    async def update_device_health(
        self, device_id: str, state: bool | str
    ) -> UnifiedDevice:
        """Record a health report for a tracked device.

        Args:
            device_id: Device identifier
            state: True/False or a vendor health string such as 'ONLINE'

        Returns:
            Updated snapshot

        Raises:
            DeviceNotFound: If the device is not tracked
        """
        device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFound(device_id)
        online = state if isinstance(state, bool) else str(state).lower() in HEALTHY_STATES
        was_online = device.is_online
        device.mark_health(online)
        if was_online != online:
            logger.info(f"Device {device_id} is now {'online' if online else 'offline'}")
        self.events.publish(
            DeviceEvent(
                type=DeviceEventType.HEALTH_CHANGED,
                device_id=device_id,
                device=device.snapshot(),
            )
        )
        return device.snapshot()

    async def add_device(self, device: UnifiedDevice) -> None:
        """Start tracking a device locally."""
        self._devices[device.id] = device.snapshot()
        self._audit.record(
            AuditCategory.CONFIGURATION, "add_device", AuditOutcome.SUCCESS,
            device_id=device.id, vendor=device.vendor,
        )
        self.events.publish(
            DeviceEvent(type=DeviceEventType.ADDED, device_id=device.id, device=device.snapshot())
        )

    async def remove_device(self, device_id: str) -> bool:
        """Stop tracking a device. Returns False if it was not tracked."""
        removed = self._devices.pop(device_id, None)
        if removed is None:
            return False
        self._audit.record(
            AuditCategory.CONFIGURATION, "remove_device", AuditOutcome.SUCCESS,
            device_id=device_id, vendor=removed.vendor,
        )
        self.events.publish(DeviceEvent(type=DeviceEventType.REMOVED, device_id=device_id))
        return True

    async def apply_vendor_event(
        self, device_id: str, capability: str, attribute: str, value: Any
    ) -> UnifiedDevice:
        """Apply a pushed attribute change (e.g., from a webhook).

        Raises:
            DeviceNotFound: If the device is not tracked
        """
        device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFound(device_id)
        updated = self.normalization.apply_attribute(device, capability, attribute, value)
        updated.mark_health(True)
        await self.commit(updated, publish=True)
        return self._devices[device_id].snapshot()

    async def assign_scope(self, device_id: str, scope: TenancyScope) -> UnifiedDevice:
        """Place a tracked device in a property/unit.

        Raises:
            DeviceNotFound: If the device is not tracked
        """
        device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFound(device_id)
        updated = device.model_copy(
            update={"property_id": scope.property_id, "unit_id": scope.unit_id}
        )
        self._devices[device_id] = updated
        self._audit.record(
            AuditCategory.CONFIGURATION, "assign_scope", AuditOutcome.SUCCESS,
            device_id=device_id, scope=scope.key,
        )
        self.events.publish(
            DeviceEvent(
                type=DeviceEventType.UPDATED, device_id=device_id, device=updated.snapshot()
            )
        )
        return updated.snapshot()

    def subscribe(self) -> asyncio.Queue[DeviceEvent]:
        return self.events.subscribe()

    def unsubscribe(self, queue: asyncio.Queue[DeviceEvent]) -> None:
        self.events.unsubscribe(queue)

    # ------------------------------------------------------------------
    # Dispatcher state store
    # ------------------------------------------------------------------

    async def lookup(self, device_id: str) -> UnifiedDevice:
        device = self._devices.get(device_id)
        if device is not None:
            return device.snapshot()
        return await self.get_device_state(device_id)

    async def commit(
        self, device: UnifiedDevice, publish: bool, force: bool = False
    ) -> None:
        """Replace the tracked snapshot of a device.

        Args:
            device: New device state
            publish: Announce the change to subscribers
            force: Announce even when the state equals the tracked one
        """
        new = device.snapshot()
        old = self._devices.get(new.id)
        if isinstance(old, LockDevice) and isinstance(new, LockDevice):
            _merge_history(old, new)
        was_low = isinstance(old, LockDevice) and old.is_low_battery
        if isinstance(new, LockDevice) and new.is_low_battery and not was_low:
            self._audit.record(
                AuditCategory.SECURITY, "low_battery", AuditOutcome.WARNING,
                device_id=new.id, battery_level=new.battery_level,
            )
        if old is not None:
            update = {"created_at": old.created_at}
            if new.scope is None and old.scope is not None:
                update.update(property_id=old.property_id, unit_id=old.unit_id)
            new = new.model_copy(update=update)
        self._devices[new.id] = new

        if publish and (force or old is None or old != new):
            event_type = DeviceEventType.ADDED if old is None else DeviceEventType.UPDATED
            self.events.publish(
                DeviceEvent(type=event_type, device_id=new.id, device=new.snapshot())
            )

    async def record_access(self, device_id: str, record: AccessRecord) -> None:
        """Append an access record to a tracked lock.

        Raises:
            DeviceNotFound: If the lock is not tracked
        """
        device = self._devices.get(device_id)
        if not isinstance(device, LockDevice):
            raise DeviceNotFound(device_id)
        device.record_access(
            operation=record.operation,
            actor_id=record.actor_id,
            success=record.success,
            failure_reason=record.failure_reason,
            timestamp=record.timestamp,
        )
