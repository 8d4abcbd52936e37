"""Tenant database models."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from uma_gateway.config import settings
from uma_gateway.core.constants import (
    MAX_DOMAIN_LENGTH,
    MAX_NAME_LENGTH,
    MAX_PUBLIC_KEY_LENGTH,
    MAX_TENANT_ID_LENGTH,
    MAX_URL_LENGTH,
)
from uma_gateway.core.database.base import Base, TimestampMixin, utcnow


class Tenant(Base, TimestampMixin):
    """Public tenant document.

    Holds everything about a tenant except private key material, which
    lives in ``TenantKeyBlob``.

    Attributes:
        id: Tenant identifier, immutable
        domain: VASP domain, unique across tenants
        tables: Partition names (users, payments, utxos)
        currencies: Ordered currency descriptors
        payer_data_options: Field name -> mandatory flag
        extra: Opaque metadata bag (column ``metadata``)
    """

    __tablename__ = settings.tenants_table

    id: Mapped[str] = mapped_column(
        String(MAX_TENANT_ID_LENGTH),
        primary_key=True,
    )
    name: Mapped[str] = mapped_column(
        String(MAX_NAME_LENGTH),
        nullable=False,
    )
    domain: Mapped[str] = mapped_column(
        String(MAX_DOMAIN_LENGTH),
        unique=True,
        index=True,
        nullable=False,
    )
    base_url: Mapped[str] = mapped_column(
        String(MAX_URL_LENGTH),
        nullable=False,
    )
    signing_public_key: Mapped[str] = mapped_column(
        String(MAX_PUBLIC_KEY_LENGTH),
        nullable=False,
    )
    encryption_public_key: Mapped[str] = mapped_column(
        String(MAX_PUBLIC_KEY_LENGTH),
        nullable=False,
    )
    tables: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    currencies: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    payer_data_options: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
    min_sendable_sats: Mapped[int] = mapped_column(BigInteger, nullable=False)
    max_sendable_sats: Mapped[int] = mapped_column(BigInteger, nullable=False)
    active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        index=True,
        nullable=False,
    )
    # "metadata" is reserved on declarative classes
    extra: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        default=dict,
        nullable=False,
    )


class TenantKeyBlob(Base):
    """Enciphered private key material of one tenant."""

    __tablename__ = settings.tenant_keys_table

    tenant_id: Mapped[str] = mapped_column(
        String(MAX_TENANT_ID_LENGTH),
        primary_key=True,
    )
    keys: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
