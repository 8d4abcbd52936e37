"""Host-based tenant resolution middleware."""

from typing import TYPE_CHECKING, Literal

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from uma_gateway.core.constants import (
    DEFAULT_TENANT_TOKEN_LENGTH,
    INVALID_TENANT_REASON,
)
from uma_gateway.core.errors import error_body
from uma_gateway.tenants.directory import TenantDirectory
from uma_gateway.tenants.record import TenantRecord


if TYPE_CHECKING:
    from starlette.types import ASGIApp


logger = structlog.get_logger()

ResolutionMode = Literal["token", "domain"]


def host_without_port(host: str) -> str:
    """Lower-cased host header value with any ``:port`` suffix removed."""
    return host.rsplit(":", 1)[0].strip().lower() if host else ""


class RequestTenantResolver(BaseHTTPMiddleware):
    """Middleware that maps the request host to an active tenant.

    In ``token`` mode the first label of the host is the routing token and
    is matched against each active tenant's ``hostname``. Tokens whose
    length differs from ``token_length`` are passed through unresolved;
    ``token_length=0`` disables that gate. In ``domain`` mode the full host
    must equal a tenant domain.

    A resolved tenant is stored on ``request.state.tenant`` and bound to
    the structlog context. A host that should resolve but matches no
    tenant is answered with 404 ``Not valid tenant``.

    Attributes:
        exclude_paths: Paths that never need a tenant (admin, health)
    """

    def __init__(
        self,
        app: "ASGIApp",
        directory: TenantDirectory,
        mode: ResolutionMode = "token",
        token_length: int = DEFAULT_TENANT_TOKEN_LENGTH,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.directory = directory
        self.mode = mode
        self.token_length = token_length
        self.exclude_paths = exclude_paths or [
            "/api/admin",
            "/health",
            "/info",
            "/docs",
            "/redoc",
            "/openapi.json",
        ]

    def applies_to(self, host: str) -> bool:
        """Whether ``host`` is in tenant-hostname form and must resolve."""
        if not host:
            return False
        if self.mode == "domain":
            return True
        token = host.split(".", 1)[0]
        return not self.token_length or len(token) == self.token_length

    def match(self, host: str) -> TenantRecord | None:
        """Find the active tenant for ``host``."""
        if self.mode == "domain":
            return self.directory.snapshot.by_domain.get(host)
        token = host.split(".", 1)[0]
        for record in self.directory.list_active():
            if record.hostname == token:
                return record
        return None

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """Resolve the tenant, then hand the request on."""
        request.state.tenant = None
        if any(request.url.path.startswith(path) for path in self.exclude_paths):
            return await call_next(request)

        host = host_without_port(request.headers.get("host", ""))
        if not self.applies_to(host):
            return await call_next(request)

        record = self.match(host)
        if record is None:
            logger.warning("tenant_not_resolved", host=host, path=request.url.path)
            return JSONResponse(
                status_code=404,
                content=error_body(INVALID_TENANT_REASON),
            )

        request.state.tenant = record
        structlog.contextvars.bind_contextvars(tenant_id=record.id)
        return await call_next(request)
