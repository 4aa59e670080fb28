"""Tests for the adapter registry."""

from __future__ import annotations

import httpx
import pytest

from device_gateway.adapters import register_builtin_adapters
from device_gateway.adapters.base import AdapterContext
from device_gateway.adapters.mock import MockAdapter
from device_gateway.adapters.yale import YaleAdapter
from device_gateway.config.settings import GatewayConfig, VendorConfig
from device_gateway.core.registry import AdapterRegistry
from device_gateway.security.credential_store import InMemoryCredentialStore


@pytest.fixture(autouse=True)
def clean_registry():
    """Isolate registry state between tests."""
    saved = dict(AdapterRegistry._adapters)
    AdapterRegistry.reset()
    yield
    AdapterRegistry.reset()
    AdapterRegistry._adapters.update(saved)


@pytest.fixture
def context(audit):
    return AdapterContext(
        config=GatewayConfig(),
        store=InMemoryCredentialStore(),
        audit=audit,
        transport=httpx.MockTransport(lambda request: httpx.Response(404)),
    )


class TestAdapterRegistry:
    """Test registration and creation."""

    def test_builtin_adapters(self):
        register_builtin_adapters()
        assert sorted(AdapterRegistry.list_adapters()) == [
            "august",
            "hue",
            "mock",
            "nest",
            "smartthings",
            "yale",
        ]

    def test_create(self, context):
        register_builtin_adapters()

        mock = AdapterRegistry.create(VendorConfig(name="mock"), context)
        yale = AdapterRegistry.create(
            VendorConfig(name="yale", base_url="https://yale.test"), context
        )

        assert isinstance(mock, MockAdapter)
        assert isinstance(yale, YaleAdapter)
        assert yale.name == "yale"

    def test_unknown_adapter(self, context):
        AdapterRegistry.register("mock", MockAdapter)
        with pytest.raises(ValueError, match="Unknown adapter: 'nest'. Available adapters: mock"):
            AdapterRegistry.create(VendorConfig(name="nest"), context)

    def test_register_rejects_non_class(self):
        with pytest.raises(TypeError):
            AdapterRegistry.register("bad", MockAdapter())

    def test_register_requires_create(self):
        class NoFactory:
            pass

        with pytest.raises(TypeError, match="no create"):
            AdapterRegistry.register("bad", NoFactory)

    def test_unregister(self):
        AdapterRegistry.register("mock", MockAdapter)
        assert AdapterRegistry.is_registered("mock")
        assert AdapterRegistry.unregister("mock") is True
        assert AdapterRegistry.unregister("mock") is False
