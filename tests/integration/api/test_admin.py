"""Integration tests for the tenant admin API."""

from collections.abc import AsyncGenerator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from tests.factories.tenant import USD
from uma_gateway.config import Settings
from uma_gateway.main import build_services, create_app
from uma_gateway.receivers import ReceiverProfile
from uma_gateway.tenants.directory import TenantDirectory
from uma_gateway.tenants.record import TenantRecord


pytestmark = pytest.mark.integration

ADMIN = "/api/admin/tenants"


@pytest.fixture
async def secured_client(
    settings: Settings,
    engine: AsyncEngine,
    directory: TenantDirectory,
    http_client: httpx.AsyncClient,
) -> AsyncGenerator[AsyncClient, None]:
    """Client for an application that requires an admin key."""
    secured = settings.model_copy(update={"admin_api_key": "s3cret"})
    services = build_services(
        secured, engine=engine, directory=directory, http_client=http_client
    )
    async with AsyncClient(
        transport=ASGITransport(app=create_app(secured, services)),
        base_url="http://admin.internal",
    ) as client:
        yield client


class TestTenantAdmin:
    """Tests for tenant CRUD endpoints."""

    async def test_create_generates_keys(self, client: AsyncClient):
        """POST tenants without keys should generate them and hide private halves."""
        response = await client.post(
            ADMIN,
            json={
                "id": "cd",
                "name": "CD Wallet",
                "domain": "cd.example.com",
                "currencies": [USD],
                "payerDataOptions": {"email": {"mandatory": True}},
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == "cd"
        assert data["baseUrl"] == "https://cd.example.com"
        assert data["tables"]["users"] == "cd_users"
        assert set(data["keys"]) == {"signingPublicKey", "encryptionPublicKey"}
        assert data["payerDataOptions"]["email"] == {"mandatory": True}
        assert "PrivateKey" not in response.text

    async def test_created_tenant_serves_protocol(self, client: AsyncClient):
        """A tenant created over the admin API should be resolvable at once."""
        created = await client.post(
            ADMIN, json={"id": "cd", "name": "CD Wallet", "domain": "cd.example.com"}
        )

        response = await client.get(
            "/.well-known/lnurlpubkey", headers={"Host": "cd.example.com"}
        )

        assert response.status_code == 200
        assert (
            response.json()["signingPubKey"]
            == created.json()["keys"]["signingPublicKey"]
        )

    async def test_create_duplicate(self, client: AsyncClient, tenant: TenantRecord):
        """POST tenants with a taken id should return 409."""
        response = await client.post(
            ADMIN, json={"id": "ab", "name": "Again", "domain": "other.example.com"}
        )

        assert response.status_code == 409
        assert response.json() == {
            "status": "ERROR",
            "reason": 'Tenant with id "ab" already exists',
        }

    async def test_create_invalid(self, client: AsyncClient):
        """POST tenants with invalid fields should return 400."""
        response = await client.post(
            ADMIN, json={"id": "not valid!", "name": "X", "domain": "x.example.com"}
        )

        assert response.status_code == 400
        assert response.json()["status"] == "ERROR"
        assert response.json()["reason"].startswith("Invalid request")

    async def test_list(self, client: AsyncClient, tenant: TenantRecord):
        """GET tenants should list stored tenants without private keys."""
        await client.post(
            ADMIN,
            json={
                "id": "cd",
                "name": "CD",
                "domain": "cd.example.com",
                "active": False,
            },
        )

        everything = await client.get(ADMIN)
        active = await client.get(ADMIN, params={"active": "true"})

        assert {t["id"] for t in everything.json()} == {"ab", "cd"}
        assert [t["id"] for t in active.json()] == ["ab"]
        assert "PrivateKey" not in everything.text

    async def test_get(self, client: AsyncClient, tenant: TenantRecord):
        """GET tenants/{id} should return one tenant or 404."""
        found = await client.get(f"{ADMIN}/ab")
        missing = await client.get(f"{ADMIN}/zz")

        assert found.status_code == 200
        assert found.json()["name"] == "AB Wallet"
        assert missing.status_code == 404
        assert missing.json() == {"status": "ERROR", "reason": "Tenant not found"}

    async def test_patch(self, client: AsyncClient, tenant: TenantRecord):
        """PATCH tenants/{id} should change only the supplied fields."""
        response = await client.patch(
            f"{ADMIN}/ab", json={"maxSendableSats": 5000, "metadata": {"tier": "gold"}}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["maxSendableSats"] == 5000
        assert data["minSendableSats"] == tenant.min_sendable_sats
        assert data["metadata"]["tier"] == "gold"

    async def test_patch_inverted_bounds(
        self, client: AsyncClient, tenant: TenantRecord
    ):
        """PATCH tenants/{id} producing inverted bounds should return 400."""
        response = await client.patch(f"{ADMIN}/ab", json={"maxSendableSats": 0})

        assert response.status_code == 400

    async def test_patch_unknown(self, client: AsyncClient):
        """PATCH tenants/{id} for an unknown tenant should return 404."""
        response = await client.patch(f"{ADMIN}/zz", json={"name": "Z"})

        assert response.status_code == 404

    async def test_deactivate_and_activate(
        self, client: AsyncClient, receiver: ReceiverProfile
    ):
        """Deactivation should stop protocol traffic until reactivation."""
        deactivated = await client.post(f"{ADMIN}/ab/deactivate")
        refused = await client.get("/.well-known/lnurlp/alice")
        await client.post(f"{ADMIN}/ab/activate")
        served = await client.get("/.well-known/lnurlp/alice")

        assert deactivated.json()["active"] is False
        assert refused.status_code == 404
        assert served.status_code == 200

    async def test_delete(self, client: AsyncClient, tenant: TenantRecord):
        """DELETE tenants/{id} should remove the tenant."""
        deleted = await client.delete(f"{ADMIN}/ab")
        again = await client.delete(f"{ADMIN}/ab")
        protocol = await client.get("/.well-known/lnurlpubkey")

        assert deleted.status_code == 204
        assert again.status_code == 404
        assert protocol.status_code == 404

    async def test_refresh(self, client: AsyncClient, tenant: TenantRecord):
        """POST tenants/refresh should report the cached tenant count."""
        response = await client.post(f"{ADMIN}/refresh")

        assert response.status_code == 200
        assert response.json() == {"status": "OK", "cached": 1}


class TestReceiverAdmin:
    """Tests for receiver endpoints."""

    async def test_receiver_lifecycle(self, client: AsyncClient, tenant: TenantRecord):
        """Receivers should be creatable, listable and deletable."""
        created = await client.post(
            f"{ADMIN}/ab/receivers",
            json={"username": "bob", "kyc_status": "VERIFIED"},
        )
        listed = await client.get(f"{ADMIN}/ab/receivers")
        payable = await client.get("/.well-known/lnurlp/bob")
        deleted = await client.delete(f"{ADMIN}/ab/receivers/bob")
        missing = await client.delete(f"{ADMIN}/ab/receivers/bob")

        assert created.status_code == 201
        assert created.json()["username"] == "bob"
        assert [r["username"] for r in listed.json()] == ["bob"]
        assert payable.status_code == 200
        assert deleted.status_code == 204
        assert missing.status_code == 404
        assert missing.json()["reason"] == "User not found"

    async def test_duplicate_receiver(
        self, client: AsyncClient, receiver: ReceiverProfile
    ):
        """Creating a taken username should return 409."""
        response = await client.post(
            f"{ADMIN}/ab/receivers", json={"username": "alice"}
        )

        assert response.status_code == 409

    async def test_unknown_tenant(self, client: AsyncClient):
        """Receiver endpoints for an unknown tenant should return 404."""
        response = await client.get(f"{ADMIN}/zz/receivers")

        assert response.status_code == 404
        assert response.json()["reason"] == "Tenant not found"


class TestAdminKey:
    """Tests for the X-Admin-Key requirement."""

    async def test_missing_key(self, secured_client: AsyncClient):
        """Requests without the admin key should return 401."""
        response = await secured_client.get(ADMIN)

        assert response.status_code == 401
        assert response.json() == {"status": "ERROR", "reason": "Invalid admin key"}

    async def test_wrong_key(self, secured_client: AsyncClient):
        """Requests with a wrong admin key should return 401."""
        response = await secured_client.get(ADMIN, headers={"X-Admin-Key": "nope"})

        assert response.status_code == 401

    async def test_valid_key(self, secured_client: AsyncClient):
        """Requests with the admin key should be served."""
        response = await secured_client.get(ADMIN, headers={"X-Admin-Key": "s3cret"})

        assert response.status_code == 200
        assert response.json() == []
