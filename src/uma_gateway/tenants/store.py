"""Durable storage for tenant documents and their key material."""

from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from uma_gateway.core.database import Base, build_session_factory, transaction
from uma_gateway.receivers import models as receiver_models  # noqa: F401
from uma_gateway.tenants.models import Tenant, TenantKeyBlob
from uma_gateway.tenants.record import TenantRecord


logger = structlog.get_logger()


def _aware(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; they were written as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_document(row: Tenant) -> dict[str, Any]:
    """Public tenant document (camelCase, no key material) from a row."""
    return {
        "id": row.id,
        "name": row.name,
        "domain": row.domain,
        "baseUrl": row.base_url,
        "tables": dict(row.tables),
        "currencies": list(row.currencies),
        "payerDataOptions": dict(row.payer_data_options),
        "minSendableSats": row.min_sendable_sats,
        "maxSendableSats": row.max_sendable_sats,
        "active": row.active,
        "metadata": dict(row.extra),
        "createdAt": _aware(row.created_at),
        "updatedAt": _aware(row.updated_at),
    }


def _apply_record(row: Tenant, record: TenantRecord) -> None:
    data = record.model_dump(mode="json", by_alias=True, exclude={"keys"})
    row.name = record.name
    row.domain = record.domain
    row.base_url = record.base_url
    row.signing_public_key = record.keys.signing_public_key
    row.encryption_public_key = record.keys.encryption_public_key
    row.tables = data["tables"]
    row.currencies = data["currencies"]
    row.payer_data_options = dict(record.payer_data_options)
    row.min_sendable_sats = record.min_sendable_sats
    row.max_sendable_sats = record.max_sendable_sats
    row.active = record.active
    row.extra = dict(record.metadata)
    row.created_at = record.created_at
    row.updated_at = record.updated_at


class TenantStore:
    """SQLAlchemy-backed store for tenant documents and key blobs.

    Every operation runs in its own transaction. Driver failures surface
    as ``StorageError`` (or ``ConflictError`` for uniqueness violations)
    and are never retried here.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self.engine = engine
        self.session_factory = session_factory or build_session_factory(engine)

    async def initialize(self) -> None:
        """Create tables and their unique constraints if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("tenant_store_initialized")

    async def find_conflict(self, tenant_id: str, domain: str) -> dict[str, Any] | None:
        """Return a stored document whose id or domain matches, if any."""
        async with transaction(self.session_factory) as session:
            stmt = select(Tenant).where(
                or_(Tenant.id == tenant_id, Tenant.domain == domain)
            )
            row = (await session.execute(stmt)).scalars().first()
            return to_document(row) if row else None

    async def get(self, tenant_id: str) -> dict[str, Any] | None:
        async with transaction(self.session_factory) as session:
            row = await session.get(Tenant, tenant_id)
            return to_document(row) if row else None

    async def get_by_domain(self, domain: str) -> dict[str, Any] | None:
        async with transaction(self.session_factory) as session:
            stmt = select(Tenant).where(Tenant.domain == domain)
            row = (await session.execute(stmt)).scalar_one_or_none()
            return to_document(row) if row else None

    async def list_all(self, active: bool | None = None) -> list[dict[str, Any]]:
        """List stored documents, optionally filtered by ``active``."""
        async with transaction(self.session_factory) as session:
            stmt = select(Tenant).order_by(Tenant.id)
            if active is not None:
                stmt = stmt.where(Tenant.active == active)
            rows = (await session.execute(stmt)).scalars().all()
            return [to_document(row) for row in rows]

    async def insert(self, record: TenantRecord, key_blob: bytes) -> None:
        """Insert the public document and the key blob in one transaction.

        Raises:
            ConflictError: If the id or domain is already taken
        """
        async with transaction(
            self.session_factory,
            conflict_message=f'Tenant with id "{record.id}" or domain '
            f'"{record.domain}" already exists',
        ) as session:
            row = Tenant(id=record.id)
            _apply_record(row, record)
            session.add(row)
            session.add(TenantKeyBlob(tenant_id=record.id, keys=key_blob))

    async def save(self, record: TenantRecord) -> bool:
        """Overwrite the public document of an existing tenant.

        Returns:
            False if no document with that id exists
        """
        async with transaction(
            self.session_factory,
            conflict_message=f'Tenant with domain "{record.domain}" already exists',
        ) as session:
            row = await session.get(Tenant, record.id)
            if row is None:
                return False
            _apply_record(row, record)
            return True

    async def save_keys(self, tenant_id: str, key_blob: bytes) -> None:
        """Insert or replace the key blob of a tenant."""
        async with transaction(self.session_factory) as session:
            blob = await session.get(TenantKeyBlob, tenant_id)
            if blob is None:
                session.add(TenantKeyBlob(tenant_id=tenant_id, keys=key_blob))
            else:
                blob.keys = key_blob

    async def load_keys(self, tenant_id: str) -> bytes | None:
        async with transaction(self.session_factory) as session:
            blob = await session.get(TenantKeyBlob, tenant_id)
            return blob.keys if blob else None

    async def delete(self, tenant_id: str) -> bool:
        """Delete the document and the key blob.

        Returns:
            True if a tenant document existed
        """
        async with transaction(self.session_factory) as session:
            result = await session.execute(delete(Tenant).where(Tenant.id == tenant_id))
            await session.execute(
                delete(TenantKeyBlob).where(TenantKeyBlob.tenant_id == tenant_id)
            )
            return result.rowcount > 0
