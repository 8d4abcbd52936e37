"""Receiver and compliance-record database models.

All three tables are shared by every tenant. Rows are separated by
``partition``, which holds the owning tenant's partition name.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from uma_gateway.core.constants import (
    MAX_KYC_STATUS_LENGTH,
    MAX_PUBLIC_KEY_LENGTH,
    MAX_TENANT_ID_LENGTH,
    MAX_USERNAME_LENGTH,
)
from uma_gateway.core.database.base import (
    Base,
    PartitionMixin,
    TimestampMixin,
    utcnow,
)


class Receiver(Base, TimestampMixin, PartitionMixin):
    """A payable user of one tenant.

    Attributes:
        username: Unique within the partition
        callback_id: Opaque token accepted in place of the username on
            the pay-request callback
        kyc_status: Compliance status reported in discovery responses
        travel_rule_required: Whether a travel-rule disclosure is expected
        channel_utxos: Settlement routing hints (channel references)
        node_pubkey: Settlement node identity
        status: ``active`` or ``disabled``
    """

    __tablename__ = "receivers"
    __table_args__ = (
        UniqueConstraint(
            "partition", "username", name="uq_receivers_partition_username"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(
        String(MAX_USERNAME_LENGTH),
        nullable=False,
    )
    callback_id: Mapped[str | None] = mapped_column(
        String(MAX_USERNAME_LENGTH),
        index=True,
        nullable=True,
    )
    kyc_status: Mapped[str | None] = mapped_column(
        String(MAX_KYC_STATUS_LENGTH),
        nullable=True,
    )
    travel_rule_required: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    channel_utxos: Mapped[list[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    node_pubkey: Mapped[str | None] = mapped_column(
        String(MAX_PUBLIC_KEY_LENGTH),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(16),
        default="active",
        nullable=False,
    )


class _ComplianceRecord(PartitionMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(
        String(MAX_TENANT_ID_LENGTH),
        index=True,
        nullable=False,
    )
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


class PaymentRecord(Base, _ComplianceRecord):
    """A completed quote, written to the tenant's payments partition."""

    __tablename__ = "payment_records"


class UtxoRecord(Base, _ComplianceRecord):
    """A settlement notification, written to the tenant's utxos partition."""

    __tablename__ = "utxo_records"
