"""Vendor adapter protocol definition.

Defines the contract every vendor integration implements so the
dispatcher and device manager can work with any vendor cloud through
one API.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Protocol, runtime_checkable

from device_gateway.core.models.command import DeviceCommand
from device_gateway.core.models.device import UnifiedDevice
from device_gateway.core.models.token import TokenRecord


@runtime_checkable
class VendorAdapter(Protocol):
    """Protocol for vendor cloud adapters.

    Lifecycle:
        1. Create instance with its HTTP client and token manager
        2. Call initialize() with an existing token, or None to load one
           from the credential store
        3. Use fetch_devices(), get_device_state(), execute_command()
        4. Call revoke_authentication() to sign out, close() on shutdown

    Adapters raise the errors in ``device_gateway.core.errors`` and never
    swallow them: DeviceNotFound, AuthenticationRequired,
    CommandNotSupported, CommandFailed, NetworkError, MappingError.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Vendor identifier (e.g., 'smartthings', 'yale')."""
        ...

    @abstractmethod
    async def initialize(self, token: TokenRecord | None = None) -> None:
        """Prepare the adapter for use.

        Args:
            token: Credentials from a completed OAuth exchange. When None,
                the adapter's token manager must already hold a token.

        Raises:
            AuthenticationRequired: If no usable token is available
        """
        ...

    @abstractmethod
    async def fetch_devices(self) -> list[UnifiedDevice]:
        """List all devices visible to the vendor account."""
        ...

    @abstractmethod
    async def get_device_state(self, device_id: str) -> UnifiedDevice:
        """Fetch the current state of a single device.

        Raises:
            DeviceNotFound: If the vendor does not know the device
        """
        ...

    @abstractmethod
    async def execute_command(
        self, device_id: str, command: DeviceCommand
    ) -> UnifiedDevice:
        """Translate and send a command.

        Returns:
            The device with the accepted command applied

        Raises:
            CommandNotSupported: If the device lacks the capability
            CommandFailed: If the vendor reports failure
        """
        ...

    @abstractmethod
    async def revoke_authentication(self) -> None:
        """Invalidate stored credentials for this vendor."""
        ...

    async def close(self) -> None:
        """Release network resources. Default does nothing."""
        return None
