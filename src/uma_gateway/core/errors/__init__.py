"""Error handling module with the ``{status, reason}`` error body."""

from uma_gateway.core.errors.exceptions import (
    AppException,
    ConflictError,
    InternalError,
    NotConfiguredError,
    NotFoundError,
    ParseError,
    StorageError,
    UnauthorizedError,
    UnsupportedConversionError,
    ValidationError,
    VerificationError,
)
from uma_gateway.core.errors.handlers import (
    ErrorResponse,
    error_body,
    public_reason,
    register_exception_handlers,
)


__all__ = [
    # Exceptions
    "AppException",
    "ConflictError",
    # Handlers
    "ErrorResponse",
    "InternalError",
    "NotConfiguredError",
    "NotFoundError",
    "ParseError",
    "StorageError",
    "UnauthorizedError",
    "UnsupportedConversionError",
    "ValidationError",
    "VerificationError",
    "error_body",
    "public_reason",
    "register_exception_handlers",
]
