"""Admin API routes for tenants and their receivers.

Mounted under ``/api/admin``, which the tenant resolver skips. When
``admin_api_key`` is configured every route requires a matching
``X-Admin-Key`` header.
"""

import secrets
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Response, Security, status
from fastapi.security import APIKeyHeader

from uma_gateway.api.dependencies import Directory, Services
from uma_gateway.core.errors import NotFoundError, UnauthorizedError
from uma_gateway.receivers import ReceiverRepository
from uma_gateway.receivers.schemas import ReceiverCreate, ReceiverProfile
from uma_gateway.tenants.directory import TenantDirectory
from uma_gateway.tenants.record import TenantRecord
from uma_gateway.tenants.schemas import RefreshResponse, TenantCreate, TenantUpdate


admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)


async def require_admin_key(
    services: Services,
    api_key: Annotated[str | None, Security(admin_key_header)],
) -> None:
    """Check the ``X-Admin-Key`` header against the configured key.

    Raises:
        UnauthorizedError: If a key is configured and the header does not match
    """
    expected = services.settings.admin_api_key
    if not expected:
        return
    if not api_key or not secrets.compare_digest(api_key, expected):
        raise UnauthorizedError("Invalid admin key", error_code="invalid_admin_key")


router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_key)],
)


async def _require_tenant(directory: TenantDirectory, tenant_id: str) -> TenantRecord:
    tenant = await directory.get(tenant_id)
    if tenant is None:
        raise NotFoundError(
            "Tenant not found", resource="tenant", resource_id=tenant_id
        )
    return tenant


async def _receivers(
    directory: TenantDirectory, services: Services, tenant_id: str
) -> ReceiverRepository:
    tenant = await _require_tenant(directory, tenant_id)
    return services.adapters.receivers_for(tenant)


# ============================================================
# Tenants
# ============================================================


@router.post(
    "/tenants",
    status_code=status.HTTP_201_CREATED,
    summary="Create tenant",
    description="Registers a tenant. Key pairs are generated when none are supplied.",
)
async def create_tenant(data: TenantCreate, directory: Directory) -> dict[str, Any]:
    tenant = await directory.add(data.to_config())
    return tenant.to_public()


@router.get(
    "/tenants",
    summary="List tenants",
    description="Lists tenants from storage, optionally filtered on active state.",
)
async def list_tenants(
    directory: Directory,
    active: Annotated[bool | None, Query()] = None,
) -> list[dict[str, Any]]:
    tenants = await directory.list_tenants(active=active)
    return [tenant.to_public() for tenant in tenants]


@router.post(
    "/tenants/refresh",
    response_model=RefreshResponse,
    summary="Refresh tenant cache",
    description="Reloads active tenants from storage into the in-process cache.",
)
async def refresh_tenants(directory: Directory) -> RefreshResponse:
    await directory.refresh()
    return RefreshResponse(cached=len(directory.list_active()))


@router.get("/tenants/{tenant_id}", summary="Get tenant")
async def get_tenant(tenant_id: str, directory: Directory) -> dict[str, Any]:
    tenant = await _require_tenant(directory, tenant_id)
    return tenant.to_public()


@router.patch(
    "/tenants/{tenant_id}",
    summary="Update tenant",
    description=(
        "Partial update. Tables and metadata are merged; other fields are replaced."
    ),
)
async def update_tenant(
    tenant_id: str, data: TenantUpdate, directory: Directory
) -> dict[str, Any]:
    tenant = await directory.update(tenant_id, data.to_changes())
    if tenant is None:
        raise NotFoundError(
            "Tenant not found", resource="tenant", resource_id=tenant_id
        )
    return tenant.to_public()


@router.delete(
    "/tenants/{tenant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete tenant",
)
async def delete_tenant(tenant_id: str, directory: Directory) -> Response:
    if not await directory.remove(tenant_id):
        raise NotFoundError(
            "Tenant not found", resource="tenant", resource_id=tenant_id
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/tenants/{tenant_id}/activate", summary="Activate tenant")
async def activate_tenant(tenant_id: str, directory: Directory) -> dict[str, Any]:
    tenant = await directory.activate(tenant_id)
    if tenant is None:
        raise NotFoundError(
            "Tenant not found", resource="tenant", resource_id=tenant_id
        )
    return tenant.to_public()


@router.post("/tenants/{tenant_id}/deactivate", summary="Deactivate tenant")
async def deactivate_tenant(tenant_id: str, directory: Directory) -> dict[str, Any]:
    tenant = await directory.deactivate(tenant_id)
    if tenant is None:
        raise NotFoundError(
            "Tenant not found", resource="tenant", resource_id=tenant_id
        )
    return tenant.to_public()


# ============================================================
# Receivers
# ============================================================


@router.get(
    "/tenants/{tenant_id}/receivers",
    response_model=list[ReceiverProfile],
    summary="List receivers",
)
async def list_receivers(
    tenant_id: str, directory: Directory, services: Services
) -> list[ReceiverProfile]:
    receivers = await _receivers(directory, services, tenant_id)
    return await receivers.list_all()


@router.post(
    "/tenants/{tenant_id}/receivers",
    response_model=ReceiverProfile,
    status_code=status.HTTP_201_CREATED,
    summary="Create receiver",
)
async def create_receiver(
    tenant_id: str, data: ReceiverCreate, directory: Directory, services: Services
) -> ReceiverProfile:
    receivers = await _receivers(directory, services, tenant_id)
    return await receivers.add(data)


@router.delete(
    "/tenants/{tenant_id}/receivers/{username}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete receiver",
)
async def delete_receiver(
    tenant_id: str, username: str, directory: Directory, services: Services
) -> Response:
    receivers = await _receivers(directory, services, tenant_id)
    if not await receivers.remove(username):
        raise NotFoundError("User not found", resource="receiver", resource_id=username)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
