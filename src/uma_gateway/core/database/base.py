"""SQLAlchemy declarative base and common mixins."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from uma_gateway.core.constants import MAX_PARTITION_LENGTH


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class PartitionMixin:
    """Mixin for rows that live in a named per-tenant partition.

    Every query against such a table must filter on ``partition``.
    """

    partition: Mapped[str] = mapped_column(
        String(MAX_PARTITION_LENGTH),
        index=True,
        nullable=False,
    )
