"""Gateway configuration.

Loads tuning parameters and per-vendor endpoints from environment
variables. Vendor secrets are resolved separately through
SecretsManager so they never sit in the config model's defaults.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from device_gateway.security.secrets_manager import SecretsManager

logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS = {
    "smartthings": "https://api.smartthings.com/v1",
    "yale": "https://api.yalehome.com/v1",
    "august": "https://api-production.august.com",
    "hue": "https://api.meethue.com/route",
    "nest": "https://smartdevicemanagement.googleapis.com/v1",
}

# Vendors whose OAuth endpoint is not {base_url}/oauth/token
DEFAULT_TOKEN_URLS = {
    "hue": "https://api.meethue.com/v2/oauth2/token",
    "nest": "https://www.googleapis.com/oauth2/v4/token",
}


def _env_bool(key: str, default: bool) -> bool:
    return os.getenv(key, "true" if default else "false").lower() == "true"


class VendorConfig(BaseModel):
    """Connection settings for one vendor cloud."""

    name: str
    enabled: bool = Field(default=False, description="Register this vendor at startup")
    base_url: str = Field(default="", description="Vendor API root URL")
    client_id: str | None = Field(default=None, repr=False)
    client_secret: str | None = Field(default=None, repr=False)
    api_key: str | None = Field(default=None, repr=False)
    token_url: str | None = Field(
        default=None, description="OAuth token endpoint; {base_url}/oauth/token when unset"
    )
    project_id: str | None = Field(
        default=None, description="Vendor project id (Google Device Access for Nest)"
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def token_endpoint(self) -> str:
        """Token URL for this vendor's OAuth grants."""
        if self.token_url:
            return self.token_url
        return DEFAULT_TOKEN_URLS.get(self.name, f"{self.base_url}/oauth/token")

    def resolve_secrets(self, secrets: SecretsManager) -> VendorConfig:
        """Fill missing credentials from Docker secrets or environment.

        Args:
            secrets: Secret source

        Returns:
            Copy of this config with credentials populated where found
        """
        updates = {
            field: value
            for field, value in secrets.vendor_credentials(self.name).items()
            if getattr(self, field) is None
        }
        return self.model_copy(update=updates)


class GatewayConfig(BaseModel):
    """Tuning parameters for retries, rate limits, tokens and commands."""

    log_level: str = Field(default="INFO", description="Root log level")

    # Retry/backoff
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0, gt=0)
    retry_max_delay: float = Field(default=30.0, gt=0)
    retry_jitter: float = Field(default=0.1, ge=0.0, le=1.0)

    # Rate limiting
    min_request_interval: float = Field(
        default=0.5, ge=0.0, description="Seconds between requests to one resource"
    )
    actions_per_minute: int = Field(
        default=60, gt=0, description="Per-vendor action budget"
    )

    # Tokens
    token_refresh_margin: float = Field(
        default=300.0, ge=0.0, description="Refresh tokens expiring within this many seconds"
    )

    # Commands
    settle_delay: float = Field(
        default=2.0, ge=0.0, description="Wait before verifying device state"
    )
    command_deadline: float = Field(
        default=30.0, gt=0, description="Max seconds a caller waits for a command"
    )
    http_timeout: float = Field(default=10.0, gt=0)

    credential_store_path: Path | None = Field(
        default=None, description="Encrypted token file; in-memory store when unset"
    )

    vendors: dict[str, VendorConfig] = Field(default_factory=dict)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @classmethod
    def from_env(cls) -> GatewayConfig:
        """Load configuration from DEVICE_GATEWAY_* environment variables.

        Returns:
            GatewayConfig instance with values from environment
        """
        prefix = "DEVICE_GATEWAY_"
        vendors = {}
        for name, default_url in DEFAULT_BASE_URLS.items():
            upper = name.upper()
            vendors[name] = VendorConfig(
                name=name,
                enabled=_env_bool(f"{prefix}{upper}_ENABLED", False),
                base_url=os.getenv(f"{prefix}{upper}_BASE_URL", default_url),
                token_url=os.getenv(f"{prefix}{upper}_TOKEN_URL"),
                project_id=os.getenv(f"{prefix}{upper}_PROJECT_ID"),
            )
        vendors["mock"] = VendorConfig(
            name="mock", enabled=_env_bool(f"{prefix}MOCK_ENABLED", False)
        )

        store_path = os.getenv(f"{prefix}CREDENTIAL_STORE_PATH")
        return cls(
            log_level=os.getenv(f"{prefix}LOG_LEVEL", "INFO"),
            max_retries=int(os.getenv(f"{prefix}MAX_RETRIES", "3")),
            retry_base_delay=float(os.getenv(f"{prefix}RETRY_BASE_DELAY", "1.0")),
            retry_max_delay=float(os.getenv(f"{prefix}RETRY_MAX_DELAY", "30.0")),
            retry_jitter=float(os.getenv(f"{prefix}RETRY_JITTER", "0.1")),
            min_request_interval=float(
                os.getenv(f"{prefix}MIN_REQUEST_INTERVAL", "0.5")
            ),
            actions_per_minute=int(os.getenv(f"{prefix}ACTIONS_PER_MINUTE", "60")),
            token_refresh_margin=float(
                os.getenv(f"{prefix}TOKEN_REFRESH_MARGIN", "300")
            ),
            settle_delay=float(os.getenv(f"{prefix}SETTLE_DELAY", "2.0")),
            command_deadline=float(os.getenv(f"{prefix}COMMAND_DEADLINE", "30")),
            http_timeout=float(os.getenv(f"{prefix}HTTP_TIMEOUT", "10")),
            credential_store_path=Path(store_path) if store_path else None,
            vendors=vendors,
        )

    def enabled_vendors(self) -> list[VendorConfig]:
        return [v for v in self.vendors.values() if v.enabled]

    def log_status(self) -> None:
        """Log effective configuration without secrets."""
        logger.info("Gateway configuration:")
        logger.info(
            f"  Retry: max={self.max_retries}, base={self.retry_base_delay}s, "
            f"cap={self.retry_max_delay}s, jitter={self.retry_jitter}"
        )
        logger.info(
            f"  Rate limit: interval={self.min_request_interval}s, "
            f"budget={self.actions_per_minute}/min"
        )
        logger.info(
            f"  Commands: settle={self.settle_delay}s, deadline={self.command_deadline}s"
        )
        logger.info(
            f"  Vendors: {', '.join(v.name for v in self.enabled_vendors()) or 'none'}"
        )
