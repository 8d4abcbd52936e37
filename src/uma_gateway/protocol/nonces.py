"""Replay protection for signed protocol messages."""

import time
from collections.abc import Callable

from uma_gateway.core.cache import RedisCache
from uma_gateway.core.constants import DEFAULT_NONCE_RETENTION_SECONDS


class InMemoryNonceValidator:
    """Process-local nonce registry.

    Suitable for a single worker. Entries expire after ``retention_seconds``
    and are pruned lazily on each check.
    """

    def __init__(
        self,
        retention_seconds: int = DEFAULT_NONCE_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.retention_seconds = retention_seconds
        self.clock = clock
        self._seen: dict[tuple[str, str], float] = {}

    def _prune(self, now: float) -> None:
        expired = [key for key, expires in self._seen.items() if expires < now]
        for key in expired:
            del self._seen[key]

    async def check_and_save(self, domain: str, nonce: str, timestamp: int) -> bool:
        now = self.clock()
        if timestamp < now - self.retention_seconds:
            return False
        self._prune(now)
        key = (domain, nonce)
        if key in self._seen:
            return False
        self._seen[key] = timestamp + self.retention_seconds
        return True


class RedisNonceValidator:
    """Nonce registry shared by every worker through Redis.

    Each (domain, nonce) pair is written with ``SET NX`` and expires when
    its timestamp leaves the retention window.
    """

    def __init__(
        self,
        cache: RedisCache,
        retention_seconds: int = DEFAULT_NONCE_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.retention_seconds = retention_seconds
        self.clock = clock

    async def check_and_save(self, domain: str, nonce: str, timestamp: int) -> bool:
        now = self.clock()
        if timestamp < now - self.retention_seconds:
            return False
        ttl = int(timestamp + self.retention_seconds - now) + 1
        return await self.cache.set_if_absent(f"{domain}:{nonce}", str(timestamp), ttl)
