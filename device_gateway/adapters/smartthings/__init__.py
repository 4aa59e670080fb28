"""SmartThings vendor adapter."""

from device_gateway.adapters.smartthings.adapter import SmartThingsAdapter
from device_gateway.core.registry import AdapterRegistry


def register() -> None:
    """Register the SmartThings adapter with the registry."""
    AdapterRegistry.register("smartthings", SmartThingsAdapter)


__all__ = ["SmartThingsAdapter", "register"]
