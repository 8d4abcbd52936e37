"""Root API router with health endpoints and router mounting."""

from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from uma_gateway import __version__
from uma_gateway.api.dependencies import DBSession, Services
from uma_gateway.protocol.routes import router as protocol_router
from uma_gateway.tenants.routes import router as admin_router


logger = structlog.get_logger()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str


class ReadinessResponse(BaseModel):
    """Readiness check response schema."""

    status: str
    checks: dict[str, str]


# Create root API router
api_router = APIRouter()

# Health check endpoints (never tenant-scoped)
health_router = APIRouter(tags=["health"])


@health_router.get(
    "/health/live",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Returns 200 if the process is running.",
)
async def liveness() -> HealthResponse:
    """Liveness probe endpoint."""
    return HealthResponse(status="alive")


@health_router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description="Checks database and, when configured, Redis connectivity.",
)
async def readiness(db: DBSession, services: Services) -> JSONResponse:
    """Readiness probe endpoint."""
    checks: dict[str, str] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        logger.warning("readiness_check_failed", check="database", error=str(e))
        checks["database"] = type(e).__name__

    if services.redis is not None:
        try:
            await services.redis.ping()
            checks["redis"] = "ok"
        except RedisError as e:
            logger.warning("readiness_check_failed", check="redis", error=str(e))
            checks["redis"] = type(e).__name__

    checks["tenants"] = str(len(services.directory.list_active()))

    all_ok = all(v == "ok" for k, v in checks.items() if k != "tenants")

    return JSONResponse(
        status_code=status.HTTP_200_OK
        if all_ok
        else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_ok else "degraded",
            "checks": checks,
        },
    )


@health_router.get(
    "/info",
    summary="Application info",
    description="Returns application metadata.",
)
async def info(services: Services) -> dict[str, Any]:
    """Application info endpoint."""
    settings = services.settings
    return {
        "app": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "debug": settings.debug,
        "tenantResolution": settings.tenant_resolution_mode,
    }


api_router.include_router(health_router)
api_router.include_router(admin_router)
api_router.include_router(protocol_router)
