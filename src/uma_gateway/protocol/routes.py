"""Tenant-scoped protocol routes.

Every route requires a tenant resolved from the request host; an
unresolved host gets 404 ``Not valid tenant``. The routes only translate
between HTTP and the handlers in the registry.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from uma_gateway.api.dependencies import ProtocolAdapter, Services
from uma_gateway.core.constants import PUBKEY_WELL_KNOWN_PATH
from uma_gateway.protocol.handlers import InboundRequest


router = APIRouter(tags=["protocol"])


def external_url(request: Request) -> str:
    """The URL the sender addressed, honouring proxy forwarding headers."""
    scheme = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("x-forwarded-host") or request.headers.get(
        "host", request.url.netloc
    )
    url = f"{scheme}://{host}{request.url.path}"
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return url


async def _dispatch(
    name: str,
    request: Request,
    adapter: ProtocolAdapter,
    services: Services,
) -> JSONResponse:
    inbound = InboundRequest(
        method=request.method,
        url=external_url(request),
        path_params=dict(request.path_params),
        body=await request.body(),
        headers=dict(request.headers),
    )
    result = await services.handlers[name].handle(adapter, inbound)
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get(
    PUBKEY_WELL_KNOWN_PATH,
    summary="Publish tenant keys",
    description="Returns the tenant's public signing and encryption keys.",
)
async def pubkey(
    request: Request, adapter: ProtocolAdapter, services: Services
) -> JSONResponse:
    return await _dispatch("pubkey", request, adapter, services)


@router.get(
    "/.well-known/lnurlp/{username}",
    summary="Discovery",
    description="Resolves a payable address to callback, bounds and currencies.",
)
async def lnurlp(
    username: str,  # noqa: ARG001
    request: Request,
    adapter: ProtocolAdapter,
    services: Services,
) -> JSONResponse:
    return await _dispatch("lnurlp", request, adapter, services)


@router.post(
    "/payreq/{callback_id}",
    summary="Quote",
    description="Turns a pay request into a settlement invoice.",
)
async def payreq(
    callback_id: str,  # noqa: ARG001
    request: Request,
    adapter: ProtocolAdapter,
    services: Services,
) -> JSONResponse:
    return await _dispatch("payreq", request, adapter, services)


@router.post(
    "/utxocallback",
    summary="Settlement callback",
    description="Records the utxos reported by the sending VASP after settlement.",
)
async def utxo_callback(
    request: Request, adapter: ProtocolAdapter, services: Services
) -> JSONResponse:
    return await _dispatch("utxo_callback", request, adapter, services)
