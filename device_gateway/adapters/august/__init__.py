"""August vendor adapter."""

from device_gateway.adapters.august.adapter import AugustAdapter
from device_gateway.core.registry import AdapterRegistry


def register() -> None:
    """Register the August adapter with the registry."""
    AdapterRegistry.register("august", AugustAdapter)


__all__ = ["AugustAdapter", "register"]
