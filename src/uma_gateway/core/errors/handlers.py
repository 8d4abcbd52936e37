"""Exception handlers rendering the protocol error body.

Every error leaving the service has the shape
``{"status": "ERROR", "reason": "<message>"}``. Server-side errors
render a generic reason; the full detail is logged only.
"""

from typing import TYPE_CHECKING, Any, cast

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from uma_gateway.core.constants import INTERNAL_ERROR_REASON
from uma_gateway.core.errors.exceptions import AppException


if TYPE_CHECKING:
    from starlette.types import ExceptionHandler


logger = structlog.get_logger()


class ErrorResponse(BaseModel):
    """Error response schema.

    Attributes:
        status: Always ``"ERROR"``
        reason: Human-readable reason safe to show to the caller
    """

    status: str = "ERROR"
    reason: str


def error_body(reason: str) -> dict[str, Any]:
    """Build the JSON body for an error response.

    The request ID travels in the ``X-Request-ID`` response header.
    """
    return ErrorResponse(reason=reason).model_dump()


def public_reason(exc: AppException) -> str:
    """Reason string that may be shown to a caller for this exception."""
    return INTERNAL_ERROR_REASON if exc.is_server_error else exc.message


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle application-specific exceptions."""
    log = logger.error if exc.is_server_error else logger.warning
    log(
        "app_exception",
        error_code=exc.error_code,
        message=exc.message,
        status_code=exc.status_code,
        path=str(request.url.path),
        details=exc.details,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(public_reason(exc)),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI/Pydantic request validation errors."""
    fields = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        fields.append(".".join(loc) or "unknown")

    logger.warning(
        "validation_error",
        path=str(request.url.path),
        fields=fields,
    )

    reason = "Invalid request"
    if fields:
        reason = f"Invalid request: {', '.join(fields)}"

    return JSONResponse(
        status_code=400,
        content=error_body(reason),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions.

    The actual error details are logged but not exposed to clients.
    """
    logger.exception(
        "unhandled_exception",
        path=str(request.url.path),
        error_type=type(exc).__name__,
    )

    return JSONResponse(
        status_code=500,
        content=error_body(INTERNAL_ERROR_REASON),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(
        AppException, cast("ExceptionHandler", app_exception_handler)
    )
    app.add_exception_handler(
        RequestValidationError, cast("ExceptionHandler", validation_exception_handler)
    )
    app.add_exception_handler(Exception, generic_exception_handler)
