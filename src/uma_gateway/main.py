"""FastAPI application factory."""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from uma_gateway import __version__
from uma_gateway.api.dependencies import GatewayServices
from uma_gateway.api.router import api_router
from uma_gateway.config import Settings, get_settings
from uma_gateway.core.cache import RedisCache, close_redis_client, create_redis_client
from uma_gateway.core.constants import NONCE_CACHE_PREFIX, PUBKEY_CACHE_PREFIX
from uma_gateway.core.database import build_engine, build_session_factory
from uma_gateway.core.errors import register_exception_handlers
from uma_gateway.core.logging import (
    RequestIdMiddleware,
    RequestLoggingMiddleware,
    configure_logging,
)
from uma_gateway.protocol.adapter import (
    TenantAdapterFactory,
    TravelRuleListener,
    UtxoListener,
)
from uma_gateway.protocol.codec import UmaCodec
from uma_gateway.protocol.currency import CurrencyConverter
from uma_gateway.protocol.handlers import build_handler_registry
from uma_gateway.protocol.interfaces import (
    InvoiceCreator,
    NonceValidator,
    ProtocolCodec,
    RateProvider,
    SenderKeyResolver,
)
from uma_gateway.protocol.nonces import InMemoryNonceValidator, RedisNonceValidator
from uma_gateway.protocol.providers import CurrencyTableRateProvider, HttpInvoiceCreator
from uma_gateway.protocol.pubkeys import SenderKeyCache
from uma_gateway.tenants.ciphers import build_key_cipher
from uma_gateway.tenants.directory import TenantDirectory
from uma_gateway.tenants.resolver import RequestTenantResolver
from uma_gateway.tenants.store import TenantStore


logger = structlog.get_logger()


def build_services(
    settings: Settings,
    *,
    engine: AsyncEngine | None = None,
    directory: TenantDirectory | None = None,
    redis: Redis | None = None,
    http_client: httpx.AsyncClient | None = None,
    codec: ProtocolCodec | None = None,
    nonces: NonceValidator | None = None,
    sender_keys: SenderKeyResolver | None = None,
    invoice_creator: InvoiceCreator | None = None,
    rate_provider: RateProvider | None = None,
    travel_rule_listener: TravelRuleListener | None = None,
    utxo_listener: UtxoListener | None = None,
) -> GatewayServices:
    """Wire the application's collaborators from settings.

    Any collaborator passed in is used as-is; the rest are built from
    ``settings``. Without ``redis_url`` the nonce registry and sender-key
    cache live in process memory.
    """
    engine = engine or build_engine(settings)
    session_factory = build_session_factory(engine)

    if directory is None:
        store = TenantStore(engine, session_factory)
        directory = TenantDirectory(
            store, build_key_cipher(settings.key_encryption_secret)
        )

    if redis is None and settings.redis_url:
        redis = create_redis_client(settings.redis_url)

    http_client = http_client or httpx.AsyncClient(
        timeout=settings.sender_key_fetch_timeout
    )

    if nonces is None:
        if redis is not None:
            nonces = RedisNonceValidator(
                RedisCache(redis, prefix=NONCE_CACHE_PREFIX),
                retention_seconds=settings.nonce_retention_seconds,
            )
        else:
            nonces = InMemoryNonceValidator(settings.nonce_retention_seconds)

    if sender_keys is None:
        sender_keys = SenderKeyCache(
            http_client,
            cache=RedisCache(redis, prefix=PUBKEY_CACHE_PREFIX) if redis else None,
            ttl_seconds=settings.sender_key_cache_seconds,
        )

    if invoice_creator is None and settings.invoice_service_url:
        invoice_creator = HttpInvoiceCreator(settings.invoice_service_url, http_client)

    adapters = TenantAdapterFactory(
        session_factory,
        invoice_creator=invoice_creator,
        rate_provider=rate_provider or CurrencyTableRateProvider(),
        travel_rule_listener=travel_rule_listener,
        utxo_listener=utxo_listener,
    )

    handlers = build_handler_registry(
        codec or UmaCodec(),
        sender_keys,
        nonces,
        converter=CurrencyConverter(),
        comment_allowed=settings.comment_allowed,
    )

    return GatewayServices(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        directory=directory,
        adapters=adapters,
        handlers=handlers,
        http_client=http_client,
        redis=redis,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler.

    Loads the tenant cache on startup, runs the periodic refresh when
    configured, and releases connections on shutdown.
    """
    services: GatewayServices = app.state.services
    settings = services.settings

    # Startup
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        environment=settings.environment,
    )
    await services.directory.initialize()

    refresh_task: asyncio.Task[None] | None = None
    if settings.tenant_refresh_seconds:
        refresh_task = asyncio.create_task(
            services.directory.refresh_periodically(settings.tenant_refresh_seconds)
        )
        logger.info(
            "tenant_refresh_scheduled", interval=settings.tenant_refresh_seconds
        )

    yield

    # Shutdown
    logger.info("application_shutdown")

    if refresh_task is not None:
        refresh_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await refresh_task

    await services.http_client.aclose()
    logger.info("http_client_closed")

    if services.redis is not None:
        await close_redis_client(services.redis)
        logger.info("redis_client_closed")

    await services.engine.dispose()
    logger.info("database_engine_disposed")


def create_app(
    settings: Settings | None = None,
    services: GatewayServices | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to build from; the environment when omitted
        services: Pre-built collaborators, mainly for tests

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or (services.settings if services else get_settings())
    configure_logging(settings.log_level, json_logs=settings.is_production)
    services = services or build_services(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Multi-tenant UMA discovery, quote and settlement-callback gateway",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
        # Disable docs in production
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
    )
    app.state.services = services

    # Middleware runs in reverse order of registration.
    # Request logging (innermost, sees the resolved tenant)
    app.add_middleware(RequestLoggingMiddleware)

    # Tenant resolution
    app.add_middleware(
        RequestTenantResolver,
        directory=services.directory,
        mode=settings.tenant_resolution_mode,
        token_length=settings.tenant_token_length,
    )

    # Request ID (outermost, runs first)
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)

    app.include_router(api_router)

    return app
