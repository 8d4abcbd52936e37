"""Unit tests for the per-tenant protocol adapter."""

from typing import Any

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tests.factories.protocol import StubInvoiceCreator
from tests.factories.receiver import ReceiverFactory
from tests.factories.tenant import USD, tenant_config
from uma_gateway.core.errors import (
    NotConfiguredError,
    StorageError,
    UnsupportedConversionError,
)
from uma_gateway.protocol.adapter import TenantAdapterFactory, TenantProtocolAdapter
from uma_gateway.protocol.messages import PayRequest
from uma_gateway.protocol.providers import CurrencyTableRateProvider
from uma_gateway.receivers import ReceiverProfile
from uma_gateway.receivers.models import Receiver
from uma_gateway.tenants.directory import TenantDirectory
from uma_gateway.tenants.record import TenantRecord


class FailingRecorder:
    """Recorder whose writes always fail."""

    async def record_payment(self, payload: dict[str, Any]) -> None:
        raise StorageError()

    async def record_utxos(self, payload: dict[str, Any]) -> None:
        raise StorageError()


@pytest.fixture
def factory(
    session_factory: async_sessionmaker[AsyncSession],
    invoices: StubInvoiceCreator,
) -> TenantAdapterFactory:
    return TenantAdapterFactory(
        session_factory,
        invoice_creator=invoices,
        rate_provider=CurrencyTableRateProvider(),
    )


@pytest.fixture
def adapter(
    factory: TenantAdapterFactory, tenant: TenantRecord
) -> TenantProtocolAdapter:
    return factory(tenant)


class TestKeysAndConfiguration:
    """Tests for key and VASP configuration accessors."""

    def test_keys_come_from_tenant(
        self, adapter: TenantProtocolAdapter, tenant: TenantRecord
    ):
        """Key getters should return the tenant's key material."""
        assert adapter.get_signing_private_key() == tenant.keys.signing_private_key
        assert adapter.get_encryption_public_key() == tenant.keys.encryption_public_key
        assert adapter.get_signing_cert_chain() is None
        assert adapter.get_expiration_timestamp() is None

    async def test_expiration_from_metadata(
        self, factory: TenantAdapterFactory, directory: TenantDirectory
    ):
        """get_expiration_timestamp should read the tenant metadata."""
        record = await directory.add(
            tenant_config(metadata={"keyExpirationTimestamp": "1800000000"})
        )

        assert factory(record).get_expiration_timestamp() == 1_800_000_000

    def test_urls_use_base_url(self, adapter: TenantProtocolAdapter):
        """Callback URLs should be built from the tenant base URL."""
        assert adapter.get_vasp_domain() == "ab.example.com"
        assert (
            adapter.get_callback_url("alice") == "https://ab.example.com/payreq/alice"
        )
        assert adapter.get_utxo_callback() == "https://ab.example.com/utxocallback"

    def test_limits_and_payer_data(self, adapter: TenantProtocolAdapter):
        """Limits and payer data options should come from the tenant."""
        assert adapter.get_min_sendable_sats() == 1
        assert adapter.get_max_sendable_sats() == 1_000_000
        assert adapter.get_payer_data_options()["identifier"] == {"mandatory": True}
        assert [c.code for c in adapter.get_currencies()] == ["USD"]


class TestReceivers:
    """Tests for receiver lookups through the adapter."""

    async def test_active_receiver_is_found(
        self, adapter: TenantProtocolAdapter, receiver: ReceiverProfile
    ):
        """Lookups should find an active receiver by username and callback id."""
        by_username = await adapter.get_receiver_by_username("alice")
        by_callback = await adapter.get_receiver_by_callback_id("cb-alice")

        assert by_username is not None
        assert by_username.username == receiver.username
        assert by_callback is not None
        assert by_callback.node_pubkey == "02aa"

    async def test_disabled_receiver_is_hidden(
        self,
        adapter: TenantProtocolAdapter,
        receiver: ReceiverProfile,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        """A disabled receiver should not be payable."""
        async with session_factory() as session, session.begin():
            await session.execute(
                update(Receiver)
                .where(Receiver.username == receiver.username)
                .values(status="disabled")
            )

        assert await adapter.get_receiver_by_username("alice") is None
        assert await adapter.get_receiver_by_callback_id("cb-alice") is None

    async def test_tenants_do_not_share_receivers(
        self,
        factory: TenantAdapterFactory,
        directory: TenantDirectory,
        receiver: ReceiverProfile,
    ):
        """Another tenant's adapter should not see this tenant's receivers."""
        other = await directory.add(tenant_config("cd", "cd.example.com"))

        assert await factory(other).get_receiver_by_username("alice") is None


class TestConversionRate:
    """Tests for get_conversion_rate."""

    async def test_same_currency_is_identity(self, factory, tenant: TenantRecord):
        """Identical currencies should convert at 1 without a provider."""
        adapter = TenantAdapterFactory(factory.session_factory)(tenant)

        assert await adapter.get_conversion_rate("usd", "USD") == 1.0

    async def test_missing_provider_raises(self, factory, tenant: TenantRecord):
        """Different currencies without a provider should raise."""
        adapter = TenantAdapterFactory(factory.session_factory)(tenant)

        with pytest.raises(UnsupportedConversionError):
            await adapter.get_conversion_rate("USD", "SAT")

    async def test_currency_table_rates(self, adapter: TenantProtocolAdapter):
        """The table provider should divide the currencies' multipliers."""
        assert await adapter.get_conversion_rate("USD", "SAT") == pytest.approx(
            USD["multiplier"] / 1000
        )
        assert await adapter.get_conversion_rate("SAT", "USD") == pytest.approx(
            1000 / USD["multiplier"]
        )

    async def test_unknown_currency_raises(self, adapter: TenantProtocolAdapter):
        """The table provider should reject currencies the tenant lacks."""
        with pytest.raises(UnsupportedConversionError):
            await adapter.get_conversion_rate("EUR", "SAT")


class TestSideEffects:
    """Tests for invoice creation, listeners and compliance recording."""

    async def test_create_invoice_delegates(
        self,
        adapter: TenantProtocolAdapter,
        receiver: ReceiverProfile,
        invoices: StubInvoiceCreator,
    ):
        """create_invoice should call the injected creator with the tenant."""
        invoice = await adapter.create_invoice(5000, "[]", receiver)

        assert invoice == "lnbc5000n1abalice"
        assert invoices.calls[0]["tenant_id"] == "ab"

    async def test_create_invoice_requires_creator(
        self, factory, tenant: TenantRecord, receiver: ReceiverProfile
    ):
        """create_invoice should raise NotConfiguredError without a creator."""
        adapter = TenantAdapterFactory(factory.session_factory)(tenant)

        with pytest.raises(NotConfiguredError):
            await adapter.create_invoice(5000, "[]", receiver)

    async def test_record_payment_writes_partition(
        self,
        adapter: TenantProtocolAdapter,
        factory: TenantAdapterFactory,
        tenant: TenantRecord,
    ):
        """record_payment should write to the tenant's payments partition."""
        await adapter.record_payment({"amountMsats": 1000})

        assert await factory.recorder_for(tenant).list_payments() == [
            {"amountMsats": 1000}
        ]

    async def test_record_failures_are_swallowed(
        self, tenant: TenantRecord, factory: TenantAdapterFactory
    ):
        """A failing recorder should not fail the request."""
        adapter = TenantProtocolAdapter(
            tenant,
            receivers=factory.receivers_for(tenant),
            recorder=FailingRecorder(),  # type: ignore[arg-type]
        )

        await adapter.record_payment({"amountMsats": 1000})
        await adapter.record_utxos({"utxos": []})

    async def test_listeners_are_called(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tenant: TenantRecord,
        receiver: ReceiverProfile,
    ):
        """Travel-rule and utxo listeners should receive the tenant and data."""
        seen: list[tuple] = []

        async def on_travel_rule(tenant, info, request, receiver) -> None:
            seen.append(("travel_rule", tenant.id, info, receiver.username))

        async def on_utxos(tenant, utxos, vasp_domain) -> None:
            seen.append(("utxos", tenant.id, len(utxos), vasp_domain))

        adapter = TenantAdapterFactory(
            session_factory,
            travel_rule_listener=on_travel_rule,
            utxo_listener=on_utxos,
        )(tenant)

        await adapter.on_travel_rule_info(
            '{"name": "Bob"}', PayRequest(amount=1000), receiver
        )
        await adapter.on_utxos_received([{"utxo": "txid:0"}], "sender.example")

        assert seen == [
            ("travel_rule", "ab", '{"name": "Bob"}', "alice"),
            ("utxos", "ab", 1, "sender.example"),
        ]

    async def test_utxo_listener_failure_is_swallowed(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        tenant: TenantRecord,
    ):
        """A failing utxo listener should be logged, not raised."""

        async def broken(tenant, utxos, vasp_domain) -> None:
            raise RuntimeError("listener down")

        adapter = TenantAdapterFactory(session_factory, utxo_listener=broken)(tenant)

        await adapter.on_utxos_received([], "sender.example")

    async def test_adding_receiver_through_factory(
        self, factory: TenantAdapterFactory, tenant: TenantRecord
    ):
        """receivers_for should scope writes to the tenant's users partition."""
        await factory.receivers_for(tenant).add(ReceiverFactory.build(username="carol"))

        assert await factory(tenant).get_receiver_by_username("carol") is not None
