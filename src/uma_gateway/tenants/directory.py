"""Tenant directory: the authoritative tenant set and its in-process cache.

Readers (request handlers, the tenant resolver) read ``_snapshot`` without
locking. Writers build a new snapshot and swap it in under ``_write_lock``,
so a reader sees either the old or the new id/domain maps, never a mix.

Every write bumps ``_generation`` under the lock. A cache fill that read
storage under an older generation is dropped, since a write may have landed
between the read and the swap.
"""

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from uma_gateway.core.errors import AppException, ConflictError
from uma_gateway.tenants.ciphers import IdentityKeyCipher, KeyCipher, KeyDecryptionError
from uma_gateway.tenants.record import TenantKeys, TenantRecord
from uma_gateway.tenants.store import TenantStore


logger = structlog.get_logger()


@dataclass(frozen=True)
class TenantSnapshot:
    """Immutable pair of lookup maps over the active, keyed tenants."""

    by_id: Mapping[str, TenantRecord] = field(
        default_factory=lambda: MappingProxyType({})
    )
    by_domain: Mapping[str, TenantRecord] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def build(cls, records: Iterable[TenantRecord]) -> "TenantSnapshot":
        by_id: dict[str, TenantRecord] = {}
        by_domain: dict[str, TenantRecord] = {}
        for record in records:
            by_id[record.id] = record
            by_domain[record.domain] = record
        return cls(MappingProxyType(by_id), MappingProxyType(by_domain))

    def with_record(self, record: TenantRecord) -> "TenantSnapshot":
        """Copy with ``record`` replacing any entry for the same id."""
        stripped = self.without(record.id)
        return TenantSnapshot.build([*stripped.by_id.values(), record])

    def without(self, tenant_id: str) -> "TenantSnapshot":
        """Copy with the id entry and every domain entry of ``tenant_id`` dropped."""
        if tenant_id not in self.by_id and all(
            r.id != tenant_id for r in self.by_domain.values()
        ):
            return self
        by_id = {k: r for k, r in self.by_id.items() if k != tenant_id}
        by_domain = {d: r for d, r in self.by_domain.items() if r.id != tenant_id}
        return TenantSnapshot(MappingProxyType(by_id), MappingProxyType(by_domain))


class TenantDirectory:
    """Owns the tenant set in storage and the cache of active tenants.

    Example:
        directory = TenantDirectory(store, cipher)
        await directory.initialize()
        tenant = await directory.get_by_domain("ab.example.com")
    """

    def __init__(self, store: TenantStore, cipher: KeyCipher | None = None) -> None:
        self.store = store
        self.cipher = cipher or IdentityKeyCipher()
        self._snapshot = TenantSnapshot()
        self._write_lock = asyncio.Lock()
        self._generation = 0

    @property
    def snapshot(self) -> TenantSnapshot:
        return self._snapshot

    # ============================================================
    # Lifecycle
    # ============================================================

    async def initialize(self) -> None:
        """Create the storage schema, then load the cache."""
        await self.store.initialize()
        await self.refresh()

    async def refresh(self) -> None:
        """Rebuild the cache from storage and swap it in.

        Only active tenants whose keys load are cached. The write lock is
        held for the whole rebuild so a concurrent add/update cannot be
        overwritten by an older storage read.
        """
        async with self._write_lock:
            documents = await self.store.list_all(active=True)
            records = [
                record
                for document in documents
                if (record := await self._hydrate(document)) is not None
            ]
            self._snapshot = TenantSnapshot.build(records)
            self._generation += 1
        logger.info(
            "tenant_cache_refreshed",
            cached=len(records),
            skipped=len(documents) - len(records),
        )

    async def refresh_periodically(self, interval_seconds: float) -> None:
        """Refresh the cache every ``interval_seconds`` until cancelled.

        A failed refresh keeps the previous snapshot and is retried on the
        next tick.
        """
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.refresh()
            except AppException as exc:
                logger.error(
                    "tenant_cache_refresh_failed",
                    error_code=exc.error_code,
                    error=exc.message,
                )

    # ============================================================
    # Reads
    # ============================================================

    async def get(self, tenant_id: str) -> TenantRecord | None:
        """Get a tenant by id, cache first.

        Returns:
            The record, or None if it does not exist or its keys do not load
        """
        cached = self._snapshot.by_id.get(tenant_id)
        if cached is not None:
            return cached
        generation = self._generation
        document = await self.store.get(tenant_id)
        return await self._load_and_cache(document, generation)

    async def get_by_domain(self, domain: str) -> TenantRecord | None:
        """Get a tenant by domain, cache first."""
        cached = self._snapshot.by_domain.get(domain)
        if cached is not None:
            return cached
        generation = self._generation
        document = await self.store.get_by_domain(domain)
        return await self._load_and_cache(document, generation)

    def list_active(self) -> list[TenantRecord]:
        """Active tenants from the cache, without a storage round-trip."""
        return list(self._snapshot.by_id.values())

    async def list_tenants(self, active: bool | None = None) -> list[TenantRecord]:
        """List tenants from storage, skipping those whose keys do not load."""
        documents = await self.store.list_all(active=active)
        return [
            record
            for document in documents
            if (record := await self._hydrate(document)) is not None
        ]

    async def exists(self, tenant_id: str) -> bool:
        if tenant_id in self._snapshot.by_id:
            return True
        return await self.store.get(tenant_id) is not None

    async def domain_exists(self, domain: str) -> bool:
        if domain in self._snapshot.by_domain:
            return True
        return await self.store.get_by_domain(domain) is not None

    # ============================================================
    # Writes
    # ============================================================

    async def add(self, config: Mapping[str, Any] | TenantRecord) -> TenantRecord:
        """Create a tenant.

        Args:
            config: A record, or provisioning fields (``id``, ``name``,
                ``domain`` and ``keys`` are required)

        Returns:
            The stored record

        Raises:
            ValidationError: If a required field is missing or invalid
            ConflictError: If the id or domain is already registered
        """
        if isinstance(config, TenantRecord):
            record = config
        else:
            record = TenantRecord.from_config(config)

        generation = self._generation
        existing = await self.store.find_conflict(record.id, record.domain)
        if existing is not None:
            if existing["id"] == record.id:
                raise ConflictError(f'Tenant with id "{record.id}" already exists')
            raise ConflictError(f'Tenant with domain "{record.domain}" already exists')

        await self.store.insert(record, self._encode_keys(record.keys))

        async with self._write_lock:
            self._commit(record.id, record if record.active else None, generation)

        logger.info(
            "tenant_added",
            tenant_id=record.id,
            domain=record.domain,
            active=record.active,
        )
        return record

    async def update(
        self, tenant_id: str, changes: Mapping[str, Any] | BaseModel
    ) -> TenantRecord | None:
        """Apply a partial update to a tenant.

        ``tables`` and ``metadata`` are merged, other supplied fields are
        replaced. New ``keys`` are re-enciphered and stored.

        Returns:
            The updated record, or None if the tenant does not exist or its
            stored keys do not load

        Raises:
            ValidationError: If the patch is invalid
            ConflictError: If the new domain belongs to another tenant
        """
        if isinstance(changes, BaseModel):
            changes = changes.model_dump(exclude_unset=True, by_alias=True)

        generation = self._generation
        document = await self.store.get(tenant_id)
        if document is None:
            return None
        current = await self._hydrate(document)
        if current is None:
            return None

        updated = current.patched(changes)
        if updated.domain != current.domain:
            owner = await self.store.get_by_domain(updated.domain)
            if owner is not None and owner["id"] != tenant_id:
                raise ConflictError(
                    f'Tenant with domain "{updated.domain}" already exists'
                )

        await self.store.save(updated)
        if "keys" in changes:
            await self.store.save_keys(tenant_id, self._encode_keys(updated.keys))

        async with self._write_lock:
            self._commit(tenant_id, updated if updated.active else None, generation)

        logger.info(
            "tenant_updated",
            tenant_id=tenant_id,
            domain=updated.domain,
            active=updated.active,
            fields=sorted(changes),
        )
        return updated

    async def activate(self, tenant_id: str) -> TenantRecord | None:
        return await self.update(tenant_id, {"active": True})

    async def deactivate(self, tenant_id: str) -> TenantRecord | None:
        return await self.update(tenant_id, {"active": False})

    async def remove(self, tenant_id: str) -> bool:
        """Delete a tenant and its key material, and evict it from the cache.

        Returns:
            True if the tenant existed
        """
        existed = await self.store.delete(tenant_id)
        async with self._write_lock:
            self._commit(tenant_id, None, self._generation)
        if existed:
            logger.info("tenant_removed", tenant_id=tenant_id)
        return existed

    # ============================================================
    # Internals
    # ============================================================

    def _encode_keys(self, keys: TenantKeys) -> bytes:
        return self.cipher.encrypt(keys.model_dump_json(by_alias=True).encode("utf-8"))

    async def _hydrate(self, document: Mapping[str, Any]) -> TenantRecord | None:
        """Combine a stored document with its deciphered keys."""
        tenant_id = document["id"]
        blob = await self.store.load_keys(tenant_id)
        if blob is None:
            logger.warning("tenant_keys_missing", tenant_id=tenant_id)
            return None
        try:
            keys = TenantKeys.model_validate_json(self.cipher.decrypt(blob))
            return TenantRecord.model_validate({**document, "keys": keys})
        except (KeyDecryptionError, PydanticValidationError) as exc:
            logger.warning(
                "tenant_keys_unloadable",
                tenant_id=tenant_id,
                error_type=type(exc).__name__,
            )
            return None

    def _commit(
        self, tenant_id: str, record: TenantRecord | None, generation: int
    ) -> None:
        """Swap a write into the cache. The caller holds ``_write_lock``.

        ``record`` is cached only when no other write landed since
        ``generation`` was read. Otherwise the id is evicted and the next
        lookup reloads it from storage.
        """
        if record is not None and generation == self._generation:
            self._snapshot = self._snapshot.with_record(record)
        else:
            self._snapshot = self._snapshot.without(tenant_id)
        self._generation += 1

    async def _load_and_cache(
        self, document: Mapping[str, Any] | None, generation: int
    ) -> TenantRecord | None:
        if document is None:
            return None
        record = await self._hydrate(document)
        if record is not None and record.active:
            async with self._write_lock:
                if generation == self._generation:
                    self._snapshot = self._snapshot.with_record(record)
        return record
