"""Pytest configuration and shared fixtures.

The application runs against a SQLite file per test. Sender key
publication is served by an ``httpx.MockTransport`` so no network is
touched. ``ASGITransport`` does not run the lifespan, so the fixtures
initialize the tenant directory themselves.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from tests.factories.protocol import SenderVasp, StubInvoiceCreator
from tests.factories.receiver import ReceiverFactory
from tests.factories.tenant import USD, tenant_config
from uma_gateway.api.dependencies import GatewayServices
from uma_gateway.config import Settings
from uma_gateway.core.constants import PUBKEY_WELL_KNOWN_PATH
from uma_gateway.core.database import build_engine, build_session_factory
from uma_gateway.main import build_services, create_app
from uma_gateway.protocol.adapter import TenantAdapterFactory
from uma_gateway.receivers import ReceiverProfile
from uma_gateway.tenants.directory import TenantDirectory
from uma_gateway.tenants.record import TenantRecord
from uma_gateway.tenants.store import TenantStore


TENANT_HOST = "ab.example.com"


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}"


@pytest.fixture
def settings(database_url: str) -> Settings:
    """Settings for an isolated test application."""
    return Settings(
        database_url=database_url,
        environment="test",
        log_level="WARNING",
        redis_url=None,
        key_encryption_secret=None,
        admin_api_key=None,
        invoice_service_url=None,
        tenant_refresh_seconds=0,
    )


@pytest.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = build_engine(settings)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
def store(
    engine: AsyncEngine, session_factory: async_sessionmaker[AsyncSession]
) -> TenantStore:
    return TenantStore(engine, session_factory)


@pytest.fixture
async def directory(store: TenantStore) -> TenantDirectory:
    """Initialized directory over an empty store."""
    directory = TenantDirectory(store)
    await directory.initialize()
    return directory


@pytest.fixture
def sender() -> SenderVasp:
    return SenderVasp()


@pytest.fixture
def invoices() -> StubInvoiceCreator:
    return StubInvoiceCreator()


@pytest.fixture
async def http_client(sender: SenderVasp) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client answering the sender's key publication endpoint only."""

    def handler(request: httpx.Request) -> httpx.Response:
        if (
            request.url.host == sender.domain
            and request.url.path == PUBKEY_WELL_KNOWN_PATH
        ):
            return httpx.Response(200, json=sender.pubkey_response())
        return httpx.Response(404, json={"status": "ERROR", "reason": "Not found"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    yield client
    await client.aclose()


@pytest.fixture
def services(
    settings: Settings,
    engine: AsyncEngine,
    directory: TenantDirectory,
    http_client: httpx.AsyncClient,
    invoices: StubInvoiceCreator,
) -> GatewayServices:
    return build_services(
        settings,
        engine=engine,
        directory=directory,
        http_client=http_client,
        invoice_creator=invoices,
    )


@pytest.fixture
def adapters(services: GatewayServices) -> TenantAdapterFactory:
    return services.adapters


@pytest.fixture
def app(settings: Settings, services: GatewayServices) -> FastAPI:
    return create_app(settings, services)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Client addressing the ``ab`` tenant host."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url=f"http://{TENANT_HOST}",
    ) as client:
        yield client


@pytest.fixture
async def tenant(directory: TenantDirectory) -> TenantRecord:
    """Active tenant ``ab`` served on ``ab.example.com`` with a USD table."""
    return await directory.add(
        tenant_config("ab", TENANT_HOST, name="AB Wallet", currencies=[USD])
    )


@pytest.fixture
async def receiver(
    tenant: TenantRecord, adapters: TenantAdapterFactory
) -> ReceiverProfile:
    """Receiver ``alice`` of tenant ``ab``."""
    return await adapters.receivers_for(tenant).add(
        ReceiverFactory.build(
            username="alice",
            callback_id="cb-alice",
            kyc_status="VERIFIED",
            channel_utxos=["utxo-1"],
            node_pubkey="02aa",
        )
    )
