"""Device gateway FastAPI application.

Wires configuration, credentials, adapters and the device manager at
startup and exposes vendor webhooks, health checks and metrics.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from device_gateway import __version__
from device_gateway.adapters import register_builtin_adapters
from device_gateway.adapters.base import AdapterContext
from device_gateway.api import health, webhooks
from device_gateway.config.settings import GatewayConfig
from device_gateway.core.errors import AuthenticationRequired, DeviceGatewayError
from device_gateway.core.registry import AdapterRegistry
from device_gateway.logging_config import setup_logging
from device_gateway.security.credential_store import (
    CredentialStore,
    EncryptedFileCredentialStore,
    InMemoryCredentialStore,
)
from device_gateway.security.secrets_manager import SecretsManager
from device_gateway.services.audit import AuditLogger
from device_gateway.services.authorization import (
    AuthorizationService,
    PortfolioResolver,
    ProofOfPresenceProvider,
)
from device_gateway.services.device_manager import DeviceManager
from device_gateway.services.rate_limiter import ActionBudget, RateLimiter

logger = logging.getLogger(__name__)


def build_credential_store(
    config: GatewayConfig, secrets: SecretsManager
) -> CredentialStore:
    """Encrypted file store when a path is configured, in-memory otherwise."""
    if config.credential_store_path is None:
        logger.warning("No credential store path configured; tokens are kept in memory")
        return InMemoryCredentialStore()
    return EncryptedFileCredentialStore.from_secrets(config.credential_store_path, secrets)


async def build_gateway(
    config: GatewayConfig,
    secrets: SecretsManager,
    audit: AuditLogger | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    portfolio_resolver: PortfolioResolver | None = None,
    proof_of_presence: ProofOfPresenceProvider | None = None,
) -> DeviceManager:
    """Create the device manager and an adapter for each enabled vendor.

    Adapters whose initialization fails (no stored credentials, an
    unreachable token endpoint) are still added; their calls raise until
    the vendor becomes usable.

    Args:
        config: Gateway configuration
        secrets: Secret source for vendor credentials
        audit: Audit sink (created when omitted)
        transport: Optional httpx transport for every vendor client
        portfolio_resolver: Maps a property id to its portfolio id
        proof_of_presence: Confirms physical presence for presence-gated locks

    Returns:
        DeviceManager with adapters added
    """
    audit = audit or AuditLogger()
    store = build_credential_store(config, secrets)
    rate_limiter = RateLimiter(
        min_interval=config.min_request_interval,
        budget=ActionBudget(max_actions=config.actions_per_minute),
    )
    manager = DeviceManager(
        authorization=AuthorizationService(
            audit,
            portfolio_resolver=portfolio_resolver,
            proof_of_presence=proof_of_presence,
        ),
        rate_limiter=rate_limiter,
        audit=audit,
        settle_delay=config.settle_delay,
        deadline=config.command_deadline,
    )
    context = AdapterContext(
        config=config,
        store=store,
        audit=audit,
        normalization=manager.normalization,
        transport=transport,
    )

    for vendor in config.enabled_vendors():
        adapter = AdapterRegistry.create(vendor.resolve_secrets(secrets), context)
        try:
            await adapter.initialize()
        except AuthenticationRequired as e:
            logger.warning(f"Adapter '{vendor.name}' awaiting authorization: {e}")
        except DeviceGatewayError as e:
            logger.error(f"Adapter '{vendor.name}' failed to initialize: {e}")
        manager.add_adapter(adapter)
    return manager


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager.

    Builds the gateway on startup unless one was injected into
    ``app.state`` and closes adapters on shutdown.

    Yields:
        None
    """
    if getattr(app.state, "device_manager", None) is None:
        config = GatewayConfig.from_env()
        setup_logging(config.log_level)
        logger.info(f"Device gateway {__version__} starting up")
        config.log_status()

        secrets = SecretsManager()
        enabled = [v.name for v in config.enabled_vendors()]
        for name, present in secrets.vendor_secret_status(enabled).items():
            logger.info(f"  Secret {name}: {'present' if present else 'missing'}")

        register_builtin_adapters()
        audit = AuditLogger()
        manager = await build_gateway(
            config,
            secrets,
            audit=audit,
            portfolio_resolver=app.state.portfolio_resolver,
            proof_of_presence=app.state.proof_of_presence,
        )
        app.state.audit = audit
        app.state.device_manager = manager

        try:
            devices = await manager.fetch_all_devices()
            logger.info(f"Initial discovery found {len(devices)} devices")
        except DeviceGatewayError as e:
            logger.warning(f"Initial discovery failed: {e}")

    yield

    logger.info("Device gateway shutting down")
    await app.state.device_manager.close()


def create_app(
    device_manager: DeviceManager | None = None,
    audit: AuditLogger | None = None,
    portfolio_resolver: PortfolioResolver | None = None,
    proof_of_presence: ProofOfPresenceProvider | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        device_manager: Prebuilt manager (tests); built from env when None
        audit: Audit sink backing /metrics when a manager is injected
        portfolio_resolver: Portfolio lookup used when the gateway is built at startup
        proof_of_presence: Presence provider used when the gateway is built at startup

    Returns:
        Configured application
    """
    app = FastAPI(
        title="Device Gateway",
        description="Vendor adapter and device normalization layer",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.device_manager = device_manager
    app.state.audit = audit
    app.state.portfolio_resolver = portfolio_resolver
    app.state.proof_of_presence = proof_of_presence

    app.include_router(health.router)
    app.include_router(webhooks.router)
    return app


app = create_app()
