"""Sender public-key discovery with caching."""

import json
import time
from collections.abc import Callable

import httpx
import structlog
import uma

from uma_gateway.core.cache import RedisCache
from uma_gateway.core.constants import (
    DEFAULT_SENDER_KEY_CACHE_SECONDS,
    PUBKEY_WELL_KNOWN_PATH,
)
from uma_gateway.core.errors import VerificationError


logger = structlog.get_logger()


def pubkey_url(domain: str) -> str:
    """Key publication URL of a VASP. Local development domains use http."""
    scheme = "http" if domain.startswith(("localhost", "127.0.0.1")) else "https"
    return f"{scheme}://{domain}{PUBKEY_WELL_KNOWN_PATH}"


class SenderKeyCache:
    """Fetches ``/.well-known/lnurlpubkey`` of sending VASPs.

    Responses are cached per domain for ``ttl_seconds``, or until the
    published ``expirationTimestamp`` if that comes first. The cache lives
    in Redis when a ``RedisCache`` is given and in process memory otherwise.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: RedisCache | None = None,
        ttl_seconds: int = DEFAULT_SENDER_KEY_CACHE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._memory: dict[str, tuple[uma.PubkeyResponse, float]] = {}

    def _ttl_for(self, keys: uma.PubkeyResponse) -> int:
        ttl = self.ttl_seconds
        if keys.expiration_timestamp is not None:
            expires_at = keys.expiration_timestamp.timestamp()
            ttl = min(ttl, int(expires_at - self.clock()))
        return ttl

    async def _cached(self, domain: str) -> uma.PubkeyResponse | None:
        if self.cache is not None:
            data = await self.cache.get_json(domain)
            return uma.PubkeyResponse.from_json(json.dumps(data)) if data else None
        entry = self._memory.get(domain)
        if entry is None:
            return None
        keys, expires_at = entry
        if expires_at <= self.clock():
            del self._memory[domain]
            return None
        return keys

    async def _store(self, domain: str, keys: uma.PubkeyResponse) -> None:
        ttl = self._ttl_for(keys)
        if ttl <= 0:
            return
        if self.cache is not None:
            await self.cache.set_json(domain, keys.to_dict(), ttl)
        else:
            self._memory[domain] = (keys, self.clock() + ttl)

    async def fetch(self, domain: str) -> uma.PubkeyResponse:
        """Return the published keys of ``domain``.

        Raises:
            VerificationError: If the keys cannot be fetched or parsed
        """
        cached = await self._cached(domain)
        if cached is not None:
            return cached

        url = pubkey_url(domain)
        try:
            response = await self.client.get(url)
            response.raise_for_status()
            keys = uma.PubkeyResponse.from_json(response.text)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "sender_keys_fetch_failed",
                vasp_domain=domain,
                error_type=type(exc).__name__,
            )
            raise VerificationError(
                details={"vasp_domain": domain, "error": type(exc).__name__}
            ) from exc

        await self._store(domain, keys)
        logger.debug("sender_keys_fetched", vasp_domain=domain)
        return keys
