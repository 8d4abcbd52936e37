"""Redis cache helpers."""

from uma_gateway.core.cache.redis import (
    RedisCache,
    close_redis_client,
    create_redis_client,
)


__all__ = [
    "RedisCache",
    "close_redis_client",
    "create_redis_client",
]
