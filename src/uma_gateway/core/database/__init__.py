"""Database layer - engine/session management, base models, and mixins."""

from uma_gateway.core.database.base import Base, PartitionMixin, TimestampMixin, utcnow
from uma_gateway.core.database.session import (
    build_engine,
    build_session_factory,
    transaction,
)


__all__ = [
    "Base",
    "PartitionMixin",
    "TimestampMixin",
    "build_engine",
    "build_session_factory",
    "transaction",
    "utcnow",
]
