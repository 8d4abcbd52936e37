"""Redis client construction and a small cache helper.

The nonce validator and the sender-key cache share one client built from
``settings.redis_url``. Tests pass a mock client instead.
"""

import json
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool


def create_redis_client(url: str, max_connections: int = 50) -> redis.Redis:
    """Create a pooled async Redis client.

    Args:
        url: Redis connection URL
        max_connections: Pool size

    Returns:
        Redis client decoding responses to ``str``
    """
    pool = ConnectionPool.from_url(
        url,
        max_connections=max_connections,
        decode_responses=True,
    )
    return redis.Redis(connection_pool=pool)


async def close_redis_client(client: redis.Redis) -> None:
    """Close the client and disconnect its pool.

    Call this during application shutdown.
    """
    await client.aclose()
    await client.connection_pool.disconnect()


class RedisCache:
    """High-level Redis cache interface.

    Provides typed methods for the caching operations used by the
    protocol collaborators.
    """

    def __init__(self, client: redis.Redis, prefix: str = "") -> None:
        """Initialize cache with a client and optional key prefix.

        Args:
            client: Async Redis client (responses decoded to ``str``)
            prefix: Prefix for all keys (e.g., "uma:nonce:")
        """
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        """Generate prefixed key."""
        return f"{self.prefix}{key}" if self.prefix else key

    async def get(self, key: str) -> str | None:
        """Get a value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found
        """
        return await self.client.get(self._key(key))

    async def set(
        self,
        key: str,
        value: str,
        ttl_seconds: int | None = None,
    ) -> None:
        """Set a value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Optional TTL in seconds
        """
        if ttl_seconds:
            await self.client.setex(self._key(key), ttl_seconds, value)
        else:
            await self.client.set(self._key(key), value)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Set a value only when the key does not exist yet.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: TTL in seconds

        Returns:
            True if the key was written, False if it already existed
        """
        written = await self.client.set(
            self._key(key), value, ex=max(ttl_seconds, 1), nx=True
        )
        return bool(written)

    async def set_json(
        self,
        key: str,
        value: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> None:
        """Set a JSON value in cache.

        Args:
            key: Cache key
            value: Dictionary to cache as JSON
            ttl_seconds: Optional TTL in seconds
        """
        await self.set(key, json.dumps(value), ttl_seconds)

    async def get_json(self, key: str) -> dict[str, Any] | None:
        """Get a JSON value from cache.

        Returns:
            Parsed dictionary or None if not found
        """
        data = await self.get(key)
        if data:
            return json.loads(data)
        return None
