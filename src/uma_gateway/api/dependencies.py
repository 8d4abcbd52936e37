"""Shared API dependencies.

The application's long-lived collaborators are built once by
``create_app`` and kept in a ``GatewayServices`` container on
``app.state.services``. Routes reach them through the aliases below.
"""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Annotated

import httpx
from fastapi import Depends, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from uma_gateway.config import Settings
from uma_gateway.core.constants import INVALID_TENANT_REASON
from uma_gateway.core.errors import NotFoundError
from uma_gateway.protocol.adapter import TenantAdapterFactory, TenantProtocolAdapter
from uma_gateway.protocol.handlers import ProtocolHandler
from uma_gateway.tenants.directory import TenantDirectory
from uma_gateway.tenants.record import TenantRecord


@dataclass
class GatewayServices:
    """Collaborators shared by every request.

    Attributes:
        settings: Settings the application was built with
        engine: Async SQLAlchemy engine
        session_factory: Session factory bound to ``engine``
        directory: Tenant directory with its in-process cache
        adapters: Builds the per-tenant protocol adapter
        handlers: Protocol handlers keyed by operation name
        http_client: Client for sender-key and invoice-service calls
        redis: Redis client, when configured
    """

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    directory: TenantDirectory
    adapters: TenantAdapterFactory
    handlers: dict[str, ProtocolHandler]
    http_client: httpx.AsyncClient
    redis: Redis | None = None


def get_services(request: Request) -> GatewayServices:
    return request.app.state.services


Services = Annotated[GatewayServices, Depends(get_services)]


async def get_db(services: Services) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session from the application's session factory."""
    async with services.session_factory() as session:
        yield session


def get_directory(services: Services) -> TenantDirectory:
    return services.directory


def get_current_tenant(request: Request) -> TenantRecord:
    """Tenant resolved from the host by ``RequestTenantResolver``.

    Raises:
        NotFoundError: If the request host did not resolve to a tenant
    """
    tenant = getattr(request.state, "tenant", None)
    if tenant is None:
        raise NotFoundError(INVALID_TENANT_REASON, resource="tenant")
    return tenant


CurrentTenant = Annotated[TenantRecord, Depends(get_current_tenant)]


def get_protocol_adapter(
    tenant: CurrentTenant, services: Services
) -> TenantProtocolAdapter:
    return services.adapters(tenant)


# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
Directory = Annotated[TenantDirectory, Depends(get_directory)]
ProtocolAdapter = Annotated[TenantProtocolAdapter, Depends(get_protocol_adapter)]
