"""Central registry for vendor adapter classes.

Adapter packages register their class under a vendor name; the
application creates instances for the vendors enabled in configuration.
Unlike a single active backend, any number of vendors can be live at once.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from device_gateway.config.settings import VendorConfig
from device_gateway.core.interfaces.adapter import VendorAdapter

if TYPE_CHECKING:
    from device_gateway.adapters.base import AdapterContext

logger = logging.getLogger(__name__)


class AdapterFactory(Protocol):
    """Adapter class exposing a `create` constructor."""

    @classmethod
    def create(cls, vendor: VendorConfig, context: AdapterContext) -> VendorAdapter: ...


class AdapterRegistry:
    """Registry of vendor adapter classes.

    Class Attributes:
        _adapters: Mapping of vendor names to adapter classes

    Example:
        >>> AdapterRegistry.register("smartthings", SmartThingsAdapter)
        >>> adapter = AdapterRegistry.create(vendor_config, context)
    """

    _adapters: dict[str, type[AdapterFactory]] = {}

    @classmethod
    def register(cls, name: str, adapter_class: type[AdapterFactory]) -> None:
        """Register an adapter class.

        Args:
            name: Vendor name
            adapter_class: Class with a `create(vendor, context)` classmethod

        Raises:
            TypeError: If adapter_class is not a class or lacks `create`
        """
        if not isinstance(adapter_class, type):
            raise TypeError(f"adapter_class must be a class, got {type(adapter_class)}")
        if not callable(getattr(adapter_class, "create", None)):
            raise TypeError(f"{adapter_class.__name__} has no create() constructor")
        if name in cls._adapters:
            logger.warning(f"Adapter '{name}' already registered, overwriting")

        cls._adapters[name] = adapter_class
        logger.info(f"Registered vendor adapter: {name}")

    @classmethod
    def unregister(cls, name: str) -> bool:
        """Unregister an adapter. Returns False if it was not registered."""
        if name in cls._adapters:
            del cls._adapters[name]
            logger.info(f"Unregistered vendor adapter: {name}")
            return True
        return False

    @classmethod
    def list_adapters(cls) -> list[str]:
        return list(cls._adapters.keys())

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._adapters

    @classmethod
    def create(cls, vendor: VendorConfig, context: AdapterContext) -> VendorAdapter:
        """Instantiate the adapter registered for `vendor.name`.

        Args:
            vendor: Vendor connection settings
            context: Shared gateway services

        Returns:
            New, uninitialized adapter instance

        Raises:
            ValueError: If no adapter is registered under that name
        """
        if vendor.name not in cls._adapters:
            available = ", ".join(cls._adapters.keys()) or "none"
            raise ValueError(
                f"Unknown adapter: '{vendor.name}'. Available adapters: {available}"
            )
        adapter = cls._adapters[vendor.name].create(vendor, context)
        logger.info(f"Created adapter instance: {vendor.name}")
        return adapter

    @classmethod
    def reset(cls) -> None:
        """Clear all registrations (for testing)."""
        cls._adapters.clear()
        logger.debug("Adapter registry reset")
