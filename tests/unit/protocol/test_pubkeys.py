"""Unit tests for sender key discovery and caching."""

import httpx
import pytest

from tests.factories.protocol import SenderVasp
from tests.factories.redis import mock_redis
from uma_gateway.core.cache import RedisCache
from uma_gateway.core.constants import PUBKEY_CACHE_PREFIX
from uma_gateway.core.errors import VerificationError
from uma_gateway.protocol.pubkeys import SenderKeyCache, pubkey_url


NOW = 1_700_000_000


class Publisher:
    """Mock transport handler counting key publication requests."""

    def __init__(self, status_code: int = 200, body: dict | bytes | None = None):
        self.status_code = status_code
        self.body = body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.body, bytes):
            return httpx.Response(self.status_code, content=self.body)
        return httpx.Response(self.status_code, json=self.body)


def client_for(publisher: Publisher) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(publisher))


class TestPubkeyUrl:
    """Tests for pubkey_url."""

    def test_https_for_public_domains(self):
        """pubkey_url should use https for public domains."""
        assert (
            pubkey_url("sender.example")
            == "https://sender.example/.well-known/lnurlpubkey"
        )

    def test_http_for_localhost(self):
        """pubkey_url should use http for local development hosts."""
        assert pubkey_url("localhost:8000").startswith("http://localhost:8000/")


class TestSenderKeyCache:
    """Tests for SenderKeyCache.fetch."""

    async def test_fetch_is_cached(self, sender: SenderVasp):
        """A second fetch for the same domain should not hit the network."""
        publisher = Publisher(body=sender.pubkey_response())
        async with client_for(publisher) as client:
            cache = SenderKeyCache(client, clock=lambda: NOW)

            first = await cache.fetch(sender.domain)
            second = await cache.fetch(sender.domain)

        assert first.signing_pubkey == bytes.fromhex(sender.signing_public_key)
        assert second == first
        assert len(publisher.requests) == 1
        assert str(publisher.requests[0].url) == pubkey_url(sender.domain)

    async def test_entry_expires_after_ttl(self, sender: SenderVasp):
        """An entry older than the TTL should be fetched again."""
        now = [NOW]
        publisher = Publisher(body=sender.pubkey_response())
        async with client_for(publisher) as client:
            cache = SenderKeyCache(client, ttl_seconds=60, clock=lambda: now[0])

            await cache.fetch(sender.domain)
            now[0] += 61
            await cache.fetch(sender.domain)

        assert len(publisher.requests) == 2

    async def test_expired_keys_are_not_cached(self, sender: SenderVasp):
        """Keys whose expirationTimestamp has passed should not be cached."""
        body = {**sender.pubkey_response(), "expirationTimestamp": NOW - 1}
        publisher = Publisher(body=body)
        async with client_for(publisher) as client:
            cache = SenderKeyCache(client, clock=lambda: NOW)

            await cache.fetch(sender.domain)
            await cache.fetch(sender.domain)

        assert len(publisher.requests) == 2

    @pytest.mark.parametrize(
        "publisher",
        [Publisher(status_code=500, body={"error": "boom"}), Publisher(body=b"<html>")],
    )
    async def test_failed_fetch_raises_verification_error(
        self, sender: SenderVasp, publisher: Publisher
    ):
        """An unreachable or malformed publication should fail verification."""
        async with client_for(publisher) as client:
            cache = SenderKeyCache(client)

            with pytest.raises(VerificationError) as exc_info:
                await cache.fetch(sender.domain)

        assert exc_info.value.message == "Invalid signature"
        assert exc_info.value.details["vasp_domain"] == sender.domain

    async def test_redis_backed_cache(self, sender: SenderVasp):
        """With a RedisCache the keys should be shared through Redis."""
        redis_client = mock_redis()
        publisher = Publisher(body=sender.pubkey_response())
        async with client_for(publisher) as client:
            first = SenderKeyCache(client, cache=RedisCache(redis_client, "keys:"))
            second = SenderKeyCache(client, cache=RedisCache(redis_client, "keys:"))

            await first.fetch(sender.domain)
            keys = await second.fetch(sender.domain)

        assert keys.signing_pubkey == bytes.fromhex(sender.signing_public_key)
        assert len(publisher.requests) == 1
        assert redis_client.ttls[f"keys:{sender.domain}"] > 0

    async def test_redis_keys_use_colon_separated_prefix(self, sender: SenderVasp):
        """Cached publications should live under ``uma:pubkeys:<domain>``."""
        redis_client = mock_redis()
        publisher = Publisher(body=sender.pubkey_response())
        async with client_for(publisher) as client:
            cache = SenderKeyCache(
                client, cache=RedisCache(redis_client, PUBKEY_CACHE_PREFIX)
            )

            await cache.fetch(sender.domain)

        assert list(redis_client.store) == [f"uma:pubkeys:{sender.domain}"]

    async def test_expiry_survives_redis_round_trip(self, sender: SenderVasp):
        """The published expiry should come back from Redis as a datetime."""
        redis_client = mock_redis()
        body = {**sender.pubkey_response(), "expirationTimestamp": NOW + 600}
        publisher = Publisher(body=body)
        async with client_for(publisher) as client:
            first = SenderKeyCache(
                client, cache=RedisCache(redis_client, "keys:"), clock=lambda: NOW
            )
            second = SenderKeyCache(
                client, cache=RedisCache(redis_client, "keys:"), clock=lambda: NOW
            )

            await first.fetch(sender.domain)
            keys = await second.fetch(sender.domain)

        assert int(keys.expiration_timestamp.timestamp()) == NOW + 600
        assert redis_client.ttls[f"keys:{sender.domain}"] == 600
        assert len(publisher.requests) == 1
