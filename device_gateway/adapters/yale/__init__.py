"""Yale Home vendor adapter."""

from device_gateway.adapters.yale.adapter import YaleAdapter
from device_gateway.core.registry import AdapterRegistry


def register() -> None:
    """Register the Yale adapter with the registry."""
    AdapterRegistry.register("yale", YaleAdapter)


__all__ = ["YaleAdapter", "register"]
