"""Integration tests for multi-tenancy isolation.

These tests verify that each host only ever sees its own tenant's
receivers, keys and compliance records.
"""

import pytest
from httpx import AsyncClient

from tests.factories.protocol import SenderVasp, verified_lnurlp_response
from tests.factories.receiver import ReceiverFactory
from tests.factories.tenant import tenant_config
from uma_gateway.protocol.adapter import TenantAdapterFactory
from uma_gateway.receivers import ReceiverProfile
from uma_gateway.tenants.directory import TenantDirectory
from uma_gateway.tenants.record import TenantRecord


pytestmark = pytest.mark.integration

CD_HOST = {"Host": "cd.example.com"}


class TestTenantIsolation:
    """Tests for multi-tenant data isolation."""

    @pytest.fixture
    async def other_tenant(self, directory: TenantDirectory) -> TenantRecord:
        """Create tenant cd on its own host."""
        return await directory.add(tenant_config("cd", "cd.example.com"))

    @pytest.fixture
    async def other_alice(
        self, other_tenant: TenantRecord, adapters: TenantAdapterFactory
    ) -> ReceiverProfile:
        """A receiver of tenant cd sharing alice's username."""
        return await adapters.receivers_for(other_tenant).add(
            ReceiverFactory.build(username="alice", callback_id="cb-cd-alice")
        )

    async def test_receiver_invisible_to_other_tenant(
        self,
        client: AsyncClient,
        receiver: ReceiverProfile,
        other_tenant: TenantRecord,
    ):
        """A receiver of ab should not be discoverable on cd's host."""
        response = await client.get("/.well-known/lnurlp/alice", headers=CD_HOST)

        assert response.status_code == 404
        assert response.json()["reason"] == "User not found"

    async def test_callback_id_invisible_to_other_tenant(
        self,
        client: AsyncClient,
        receiver: ReceiverProfile,
        other_tenant: TenantRecord,
    ):
        """ab's callback id should not be payable on cd's host."""
        response = await client.post(
            "/payreq/cb-alice", json={"amount": 1000}, headers=CD_HOST
        )

        assert response.status_code == 404
        assert response.json()["reason"] == "Receiver not found"

    async def test_each_host_publishes_its_own_keys(
        self,
        client: AsyncClient,
        tenant: TenantRecord,
        other_tenant: TenantRecord,
    ):
        """Key publication should return the keys of the resolved tenant."""
        ab = await client.get("/.well-known/lnurlpubkey")
        cd = await client.get("/.well-known/lnurlpubkey", headers=CD_HOST)

        assert ab.json()["signingPubKey"] == tenant.keys.signing_public_key
        assert cd.json()["signingPubKey"] == other_tenant.keys.signing_public_key

    async def test_same_username_signed_by_its_tenant(
        self,
        client: AsyncClient,
        receiver: ReceiverProfile,
        other_alice: ReceiverProfile,
        other_tenant: TenantRecord,
        sender: SenderVasp,
    ):
        """A signed discovery on cd should be signed with cd's key."""
        response = await client.get(
            "/.well-known/lnurlp/alice",
            params=sender.lnurlp_query("alice@cd.example.com"),
            headers=CD_HOST,
        )

        assert response.status_code == 200
        verified = verified_lnurlp_response(
            response.json(), other_tenant.keys.signing_public_key
        )
        assert verified.compliance.receiver_identifier == "alice@cd.example.com"

    async def test_payments_recorded_per_tenant(
        self,
        client: AsyncClient,
        receiver: ReceiverProfile,
        other_alice: ReceiverProfile,
        tenant: TenantRecord,
        other_tenant: TenantRecord,
        sender: SenderVasp,
        adapters: TenantAdapterFactory,
    ):
        """A quote on cd should be recorded in cd's payments partition only."""
        response = await client.post(
            "/payreq/cb-cd-alice", json=sender.pay_request(2000), headers=CD_HOST
        )

        assert response.status_code == 200
        assert len(await adapters.recorder_for(other_tenant).list_payments()) == 1
        assert await adapters.recorder_for(tenant).list_payments() == []
