"""Domain exceptions for the application.

These exceptions represent business-logic and collaborator errors and are
converted to ``{"status": "ERROR", "reason": ...}`` responses by the
exception handlers and by the protocol handlers.
"""

from typing import Any


class AppException(Exception):
    """Base exception for all application errors.

    All domain exceptions should inherit from this class.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for logs
        status_code: HTTP status code for the response
        details: Additional error details (logged, never rendered for 5xx)
    """

    message: str = "An unexpected error occurred"
    error_code: str = "internal_error"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    @property
    def is_server_error(self) -> bool:
        """Whether the error belongs to the 5xx class."""
        return self.status_code >= 500


class ValidationError(AppException):
    """Raised when input to the directory or a handler is missing or malformed.

    Example:
        raise ValidationError("Tenant domain is required", details={"field": "domain"})
    """

    message = "Validation error"
    error_code = "validation_error"
    status_code = 400


class ParseError(ValidationError):
    """Raised when a protocol payload cannot be parsed."""

    message = "Invalid request format"
    error_code = "parse_error"


class ConflictError(AppException):
    """Raised when a uniqueness constraint would be violated.

    Example:
        raise ConflictError('Tenant with id "vasp1" already exists')
    """

    message = "Resource conflict"
    error_code = "conflict"
    status_code = 409


class NotFoundError(AppException):
    """Raised when a requested tenant or receiver is not found.

    Example:
        raise NotFoundError("User not found", resource="receiver", resource_id=username)
    """

    message = "Resource not found"
    error_code = "not_found"
    status_code = 404

    def __init__(
        self,
        message: str | None = None,
        resource: str | None = None,
        resource_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs.pop("details", {})
        if resource:
            details["resource"] = resource
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(message=message, details=details, **kwargs)


class VerificationError(AppException):
    """Raised when a signature or replay-nonce check fails.

    The message is rendered to the caller, so it must not reveal which
    check failed. Put that in ``details`` instead.
    """

    message = "Invalid signature"
    error_code = "verification_failed"
    status_code = 400


class UnauthorizedError(AppException):
    """Raised when an admin credential is missing or wrong."""

    message = "Authentication required"
    error_code = "unauthorized"
    status_code = 401


class UnsupportedConversionError(AppException):
    """Raised when no conversion rate exists for a currency pair."""

    message = "Unsupported currency conversion"
    error_code = "unsupported_conversion"
    status_code = 500

    def __init__(self, from_currency: str, to_currency: str, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        details.update({"from_currency": from_currency, "to_currency": to_currency})
        super().__init__(
            message=f"No rate provider configured for {from_currency} -> {to_currency}",
            details=details,
            **kwargs,
        )


class NotConfiguredError(AppException):
    """Raised when a required collaborator (invoice creator, ...) is absent."""

    message = "Collaborator not configured"
    error_code = "not_configured"
    status_code = 500


class StorageError(AppException):
    """Raised when the durable store fails. Never retried internally."""

    message = "Storage operation failed"
    error_code = "storage_error"
    status_code = 500


class InternalError(AppException):
    """Catch-all for unexpected failures."""

    message = "Internal server error"
    error_code = "internal_error"
    status_code = 500
