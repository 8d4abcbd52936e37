"""Per-tenant facade implementing ``ProtocolCapabilities``."""

from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from uma_gateway.core.errors import (
    AppException,
    NotConfiguredError,
    UnsupportedConversionError,
)
from uma_gateway.protocol.interfaces import InvoiceCreator, RateProvider
from uma_gateway.protocol.messages import PayRequest
from uma_gateway.receivers import (
    ComplianceRecorder,
    ReceiverProfile,
    ReceiverRepository,
)
from uma_gateway.tenants.record import Currency, TenantRecord


logger = structlog.get_logger()

TravelRuleListener = Callable[
    [TenantRecord, str, PayRequest, ReceiverProfile], Awaitable[None]
]
UtxoListener = Callable[[TenantRecord, list[dict[str, Any]], str], Awaitable[None]]

KEY_EXPIRATION_METADATA_KEY = "keyExpirationTimestamp"


class TenantProtocolAdapter:
    """Exposes one tenant's keys, receivers, limits and side effects.

    Holds nothing but the tenant snapshot and injected collaborators.
    Compliance recording never fails the request: errors are logged as
    ``compliance_record_failed``.
    """

    def __init__(
        self,
        tenant: TenantRecord,
        receivers: ReceiverRepository,
        recorder: ComplianceRecorder,
        invoice_creator: InvoiceCreator | None = None,
        rate_provider: RateProvider | None = None,
        travel_rule_listener: TravelRuleListener | None = None,
        utxo_listener: UtxoListener | None = None,
    ) -> None:
        self.tenant = tenant
        self.receivers = receivers
        self.recorder = recorder
        self.invoice_creator = invoice_creator
        self.rate_provider = rate_provider
        self.travel_rule_listener = travel_rule_listener
        self.utxo_listener = utxo_listener

    # ============================================================
    # Keys
    # ============================================================

    def get_signing_private_key(self) -> bytes:
        return self.tenant.keys.signing_private_key

    def get_signing_public_key(self) -> str:
        return self.tenant.keys.signing_public_key

    def get_encryption_private_key(self) -> bytes:
        return self.tenant.keys.encryption_private_key

    def get_encryption_public_key(self) -> str:
        return self.tenant.keys.encryption_public_key

    def get_signing_cert_chain(self) -> list[str] | None:
        return self.tenant.keys.signing_cert_chain

    def get_encryption_cert_chain(self) -> list[str] | None:
        return self.tenant.keys.encryption_cert_chain

    def get_expiration_timestamp(self) -> int | None:
        """Key expiry published to senders, from tenant metadata if set."""
        value = self.tenant.metadata.get(KEY_EXPIRATION_METADATA_KEY)
        return int(value) if value is not None else None

    # ============================================================
    # Receivers
    # ============================================================

    async def get_receiver_by_username(self, username: str) -> ReceiverProfile | None:
        receiver = await self.receivers.get_by_username(username)
        return receiver if receiver is not None and receiver.is_active else None

    async def get_receiver_by_callback_id(
        self, callback_id: str
    ) -> ReceiverProfile | None:
        receiver = await self.receivers.get_by_callback_id(callback_id)
        return receiver if receiver is not None and receiver.is_active else None

    # ============================================================
    # VASP configuration
    # ============================================================

    def get_vasp_domain(self) -> str:
        return self.tenant.domain

    def get_callback_url(self, username: str) -> str:
        return f"{self.tenant.base_url}/payreq/{username}"

    def get_utxo_callback(self) -> str:
        return f"{self.tenant.base_url}/utxocallback"

    def get_min_sendable_sats(self) -> int:
        return self.tenant.min_sendable_sats

    def get_max_sendable_sats(self) -> int:
        return self.tenant.max_sendable_sats

    # ============================================================
    # Currencies
    # ============================================================

    def get_currencies(self) -> list[Currency]:
        return list(self.tenant.currencies)

    def get_payer_data_options(self) -> dict[str, dict[str, bool]]:
        return self.tenant.payer_data_wire()

    async def get_conversion_rate(self, from_currency: str, to_currency: str) -> float:
        """Rate from one unit of ``from_currency`` to ``to_currency``.

        Raises:
            UnsupportedConversionError: If the currencies differ and no rate
                provider is configured
        """
        if from_currency.upper() == to_currency.upper():
            return 1.0
        if self.rate_provider is None:
            raise UnsupportedConversionError(from_currency, to_currency)
        return await self.rate_provider(from_currency, to_currency, self.tenant)

    # ============================================================
    # Side effects
    # ============================================================

    async def create_invoice(
        self, amount_msats: int, metadata: str, receiver: ReceiverProfile
    ) -> str:
        """Create a settlement invoice through the injected creator.

        Raises:
            NotConfiguredError: If no invoice creator is configured
        """
        if self.invoice_creator is None:
            raise NotConfiguredError(
                "Invoice creator not configured", details={"tenant_id": self.tenant.id}
            )
        return await self.invoice_creator(amount_msats, metadata, receiver, self.tenant)

    async def on_travel_rule_info(
        self, info: str, request: PayRequest, receiver: ReceiverProfile
    ) -> None:
        logger.info(
            "travel_rule_info_received",
            receiver=receiver.username,
            sender=request.sender_identifier,
        )
        if self.travel_rule_listener is not None:
            await self.travel_rule_listener(self.tenant, info, request, receiver)

    async def on_utxos_received(
        self, utxos: list[dict[str, Any]], vasp_domain: str
    ) -> None:
        logger.info("utxos_received", vasp_domain=vasp_domain, count=len(utxos))
        if self.utxo_listener is None:
            return
        try:
            await self.utxo_listener(self.tenant, utxos, vasp_domain)
        except Exception as exc:
            logger.warning(
                "utxo_listener_failed",
                vasp_domain=vasp_domain,
                error_type=type(exc).__name__,
                error=str(exc),
            )

    async def record_payment(self, payload: dict[str, Any]) -> None:
        try:
            await self.recorder.record_payment(payload)
        except AppException as exc:
            logger.warning(
                "compliance_record_failed",
                record="payment",
                error_code=exc.error_code,
                error=exc.message,
            )

    async def record_utxos(self, payload: dict[str, Any]) -> None:
        try:
            await self.recorder.record_utxos(payload)
        except AppException as exc:
            logger.warning(
                "compliance_record_failed",
                record="utxos",
                error_code=exc.error_code,
                error=exc.message,
            )


class TenantAdapterFactory:
    """Builds a ``TenantProtocolAdapter`` for a resolved tenant.

    The collaborators are shared by every tenant. Only the partition
    names differ between the adapters it produces.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        invoice_creator: InvoiceCreator | None = None,
        rate_provider: RateProvider | None = None,
        travel_rule_listener: TravelRuleListener | None = None,
        utxo_listener: UtxoListener | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.invoice_creator = invoice_creator
        self.rate_provider = rate_provider
        self.travel_rule_listener = travel_rule_listener
        self.utxo_listener = utxo_listener

    def receivers_for(self, tenant: TenantRecord) -> ReceiverRepository:
        return ReceiverRepository(self.session_factory, tenant.tables.users)

    def recorder_for(self, tenant: TenantRecord) -> ComplianceRecorder:
        return ComplianceRecorder(
            self.session_factory,
            tenant.id,
            payments_partition=tenant.tables.payments,
            utxos_partition=tenant.tables.utxos,
        )

    def __call__(self, tenant: TenantRecord) -> TenantProtocolAdapter:
        return TenantProtocolAdapter(
            tenant,
            receivers=self.receivers_for(tenant),
            recorder=self.recorder_for(tenant),
            invoice_creator=self.invoice_creator,
            rate_provider=self.rate_provider,
            travel_rule_listener=self.travel_rule_listener,
            utxo_listener=self.utxo_listener,
        )
