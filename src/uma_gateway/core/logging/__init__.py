"""Logging module with structured logging and request tracking."""

from uma_gateway.core.logging.config import configure_logging
from uma_gateway.core.logging.middleware import (
    RequestIdMiddleware,
    RequestLoggingMiddleware,
)


__all__ = [
    "RequestIdMiddleware",
    "RequestLoggingMiddleware",
    "configure_logging",
]
