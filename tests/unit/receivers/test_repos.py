"""Unit tests for partition-scoped receiver and compliance repositories."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tests.factories.receiver import ReceiverFactory
from uma_gateway.core.errors import ConflictError
from uma_gateway.receivers import ComplianceRecorder, ReceiverRepository
from uma_gateway.tenants.directory import TenantDirectory


@pytest.fixture
async def repos(
    directory: TenantDirectory, session_factory: async_sessionmaker[AsyncSession]
) -> tuple[ReceiverRepository, ReceiverRepository]:
    """Repositories over two tenants' users partitions."""
    return (
        ReceiverRepository(session_factory, "ab_users"),
        ReceiverRepository(session_factory, "cd_users"),
    )


class TestReceiverRepository:
    """Tests for ReceiverRepository."""

    async def test_add_and_get(self, repos):
        """add should create a receiver readable by username."""
        ab, _ = repos

        created = await ab.add(
            ReceiverFactory.build(username="alice", kyc_status="VERIFIED")
        )
        fetched = await ab.get_by_username("alice")

        assert fetched is not None
        assert fetched.username == created.username
        assert fetched.kyc_status == "VERIFIED"
        assert fetched.travel_rule_required is True
        assert fetched.is_active

    async def test_partitions_are_isolated(self, repos):
        """A receiver of one partition should be invisible to another."""
        ab, cd = repos
        await ab.add(ReceiverFactory.build(username="alice"))

        assert await cd.get_by_username("alice") is None
        assert await cd.list_all() == []

    async def test_same_username_in_two_partitions(self, repos):
        """Usernames should be unique per partition only."""
        ab, cd = repos

        await ab.add(ReceiverFactory.build(username="alice"))
        await cd.add(ReceiverFactory.build(username="alice"))

        assert (await ab.get_by_username("alice")) is not None
        assert (await cd.get_by_username("alice")) is not None

    async def test_duplicate_username_conflicts(self, repos):
        """add should raise ConflictError for a taken username."""
        ab, _ = repos
        await ab.add(ReceiverFactory.build(username="alice"))

        with pytest.raises(ConflictError, match='User "alice" already exists'):
            await ab.add(ReceiverFactory.build(username="alice"))

    async def test_get_by_callback_id(self, repos):
        """get_by_callback_id should match the callback id or the username."""
        ab, _ = repos
        await ab.add(ReceiverFactory.build(username="alice", callback_id="cb-1"))

        by_callback = await ab.get_by_callback_id("cb-1")
        by_username = await ab.get_by_callback_id("alice")

        assert by_callback is not None
        assert by_callback.username == "alice"
        assert by_username is not None
        assert await ab.get_by_callback_id("cb-2") is None

    async def test_username_match_wins(self, repos):
        """A username match should win over another receiver's callback id."""
        ab, _ = repos
        await ab.add(ReceiverFactory.build(username="bob", callback_id="alice"))
        await ab.add(ReceiverFactory.build(username="alice"))

        receiver = await ab.get_by_callback_id("alice")

        assert receiver is not None
        assert receiver.username == "alice"

    async def test_remove(self, repos):
        """remove should delete the receiver and report whether it existed."""
        ab, _ = repos
        await ab.add(ReceiverFactory.build(username="alice"))

        assert await ab.remove("alice") is True
        assert await ab.remove("alice") is False
        assert await ab.list_all() == []


class TestComplianceRecorder:
    """Tests for ComplianceRecorder."""

    async def test_records_land_in_their_partitions(
        self,
        directory: TenantDirectory,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        """Payments and utxos should be written to separate partitions."""
        ab = ComplianceRecorder(session_factory, "ab", "ab_payments", "ab_utxos")
        cd = ComplianceRecorder(session_factory, "cd", "cd_payments", "cd_utxos")

        await ab.record_payment({"amountMsats": 1000})
        await ab.record_utxos({"utxos": [{"utxo": "txid:0", "amountMsats": 1000}]})

        assert await ab.list_payments() == [{"amountMsats": 1000}]
        assert len(await ab.list_utxos()) == 1
        assert await cd.list_payments() == []
        assert await cd.list_utxos() == []
