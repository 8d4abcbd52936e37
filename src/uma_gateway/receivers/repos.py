"""Partition-scoped repositories for receivers and compliance records."""

from typing import Any

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from uma_gateway.core.database import transaction
from uma_gateway.receivers.models import PaymentRecord, Receiver, UtxoRecord
from uma_gateway.receivers.schemas import ReceiverCreate, ReceiverProfile


class ReceiverRepository:
    """Repository for the receivers of one tenant.

    Every query is filtered on the tenant's users partition, so two
    tenants never see each other's receivers.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        partition: str,
    ) -> None:
        self.session_factory = session_factory
        self.partition = partition

    async def get_by_username(self, username: str) -> ReceiverProfile | None:
        """Get a receiver by username.

        Args:
            username: The receiver's username

        Returns:
            ReceiverProfile if found, None otherwise
        """
        async with transaction(self.session_factory) as session:
            stmt = select(Receiver).where(
                Receiver.partition == self.partition,
                Receiver.username == username,
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            return ReceiverProfile.model_validate(row) if row else None

    async def get_by_callback_id(self, callback_id: str) -> ReceiverProfile | None:
        """Get a receiver whose username or callback id equals ``callback_id``.

        A username match wins over a callback id match.
        """
        async with transaction(self.session_factory) as session:
            stmt = select(Receiver).where(
                Receiver.partition == self.partition,
                or_(
                    Receiver.username == callback_id,
                    Receiver.callback_id == callback_id,
                ),
            )
            rows = (await session.execute(stmt)).scalars().all()
            if not rows:
                return None
            row = next((r for r in rows if r.username == callback_id), rows[0])
            return ReceiverProfile.model_validate(row)

    async def list_all(self) -> list[ReceiverProfile]:
        async with transaction(self.session_factory) as session:
            stmt = (
                select(Receiver)
                .where(Receiver.partition == self.partition)
                .order_by(Receiver.username)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [ReceiverProfile.model_validate(row) for row in rows]

    async def add(self, data: ReceiverCreate) -> ReceiverProfile:
        """Create a receiver.

        Raises:
            ConflictError: If the username is taken in this partition
        """
        async with transaction(
            self.session_factory,
            conflict_message=f'User "{data.username}" already exists',
        ) as session:
            row = Receiver(partition=self.partition, **data.model_dump())
            session.add(row)
            await session.flush()
            return ReceiverProfile.model_validate(row)

    async def remove(self, username: str) -> bool:
        """Delete a receiver.

        Returns:
            True if a receiver was deleted
        """
        async with transaction(self.session_factory) as session:
            result = await session.execute(
                delete(Receiver).where(
                    Receiver.partition == self.partition,
                    Receiver.username == username,
                )
            )
            return result.rowcount > 0


class ComplianceRecorder:
    """Writes completed quotes and settlement notifications.

    Payments land in the tenant's payments partition and utxo notifications
    in its utxos partition, each stamped with the tenant id.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tenant_id: str,
        payments_partition: str,
        utxos_partition: str,
    ) -> None:
        self.session_factory = session_factory
        self.tenant_id = tenant_id
        self.payments_partition = payments_partition
        self.utxos_partition = utxos_partition

    async def record_payment(self, payload: dict[str, Any]) -> None:
        async with transaction(self.session_factory) as session:
            session.add(
                PaymentRecord(
                    partition=self.payments_partition,
                    tenant_id=self.tenant_id,
                    payload=payload,
                )
            )

    async def record_utxos(self, payload: dict[str, Any]) -> None:
        async with transaction(self.session_factory) as session:
            session.add(
                UtxoRecord(
                    partition=self.utxos_partition,
                    tenant_id=self.tenant_id,
                    payload=payload,
                )
            )

    async def list_payments(self) -> list[dict[str, Any]]:
        """Recorded payment payloads, oldest first."""
        async with transaction(self.session_factory) as session:
            stmt = (
                select(PaymentRecord.payload)
                .where(PaymentRecord.partition == self.payments_partition)
                .order_by(PaymentRecord.id)
            )
            return list((await session.execute(stmt)).scalars().all())

    async def list_utxos(self) -> list[dict[str, Any]]:
        """Recorded utxo notification payloads, oldest first."""
        async with transaction(self.session_factory) as session:
            stmt = (
                select(UtxoRecord.payload)
                .where(UtxoRecord.partition == self.utxos_partition)
                .order_by(UtxoRecord.id)
            )
            return list((await session.execute(stmt)).scalars().all())
