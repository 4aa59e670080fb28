"""Tests for gateway configuration."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from device_gateway.config.settings import GatewayConfig, VendorConfig
from device_gateway.security.secrets_manager import SecretsManager


class TestGatewayConfig:
    """Test defaults, validation and environment loading."""

    def test_defaults(self):
        config = GatewayConfig()

        assert config.max_retries == 3
        assert config.min_request_interval == 0.5
        assert config.actions_per_minute == 60
        assert config.token_refresh_margin == 300.0
        assert config.settle_delay == 2.0
        assert config.credential_store_path is None

    def test_log_level_normalized(self):
        assert GatewayConfig(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("log_level", "LOUD"),
            ("retry_jitter", 1.5),
            ("retry_base_delay", 0),
            ("actions_per_minute", 0),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            GatewayConfig(**{field: value})

    def test_from_env(self):
        """Test environment variables override defaults and enable vendors."""
        env = {
            "DEVICE_GATEWAY_LOG_LEVEL": "warning",
            "DEVICE_GATEWAY_MAX_RETRIES": "5",
            "DEVICE_GATEWAY_SETTLE_DELAY": "0.5",
            "DEVICE_GATEWAY_CREDENTIAL_STORE_PATH": "/var/lib/gateway/tokens.enc",
            "DEVICE_GATEWAY_YALE_ENABLED": "true",
            "DEVICE_GATEWAY_YALE_BASE_URL": "https://yale.test/",
            "DEVICE_GATEWAY_MOCK_ENABLED": "true",
        }
        with patch.dict(os.environ, env, clear=True):
            config = GatewayConfig.from_env()

        assert config.log_level == "WARNING"
        assert config.max_retries == 5
        assert config.settle_delay == 0.5
        assert config.credential_store_path == Path("/var/lib/gateway/tokens.enc")
        assert sorted(v.name for v in config.enabled_vendors()) == ["mock", "yale"]
        assert config.vendors["yale"].base_url == "https://yale.test"
        assert config.vendors["smartthings"].base_url == "https://api.smartthings.com/v1"

    def test_nest_project_from_env(self):
        env = {
            "DEVICE_GATEWAY_NEST_ENABLED": "true",
            "DEVICE_GATEWAY_NEST_PROJECT_ID": "proj-42",
        }
        with patch.dict(os.environ, env, clear=True):
            config = GatewayConfig.from_env()

        nest = config.vendors["nest"]
        assert nest.enabled is True
        assert nest.project_id == "proj-42"
        assert nest.base_url == "https://smartdevicemanagement.googleapis.com/v1"


class TestVendorConfig:
    """Test secret resolution."""

    def test_resolve_secrets_fills_missing(self, tmp_path):
        (tmp_path / "yale_api_key").write_text("file-key")
        (tmp_path / "yale_client_id").write_text("file-id")
        vendor = VendorConfig(name="yale", client_id="explicit-id")

        with patch.dict(os.environ, {}, clear=True):
            resolved = vendor.resolve_secrets(SecretsManager(secrets_path=tmp_path))

        assert resolved.api_key == "file-key"
        assert resolved.client_id == "explicit-id"
        assert resolved.client_secret is None
        assert vendor.api_key is None

    def test_secrets_hidden_from_repr(self):
        vendor = VendorConfig(name="yale", client_secret="s3cret")
        assert "s3cret" not in repr(vendor)

    def test_token_endpoint(self):
        """Test the OAuth endpoint follows base_url unless overridden."""
        assert (
            VendorConfig(name="yale", base_url="https://yale.test").token_endpoint()
            == "https://yale.test/oauth/token"
        )
        assert (
            VendorConfig(name="nest", base_url="https://sdm.test").token_endpoint()
            == "https://www.googleapis.com/oauth2/v4/token"
        )
        assert (
            VendorConfig(
                name="hue", base_url="https://hue.test", token_url="https://auth.test/token"
            ).token_endpoint()
            == "https://auth.test/token"
        )
