"""Cache module for Redis-backed shared state.

Provides:
- Redis client connection management
- A prefixed key/value cache used for the token revocation list
"""

from wakegate.core.cache.redis import (
    RedisCache,
    RedisPoolHolder,
    close_redis_pool,
    create_redis_client,
)


__all__ = [
    "RedisCache",
    "RedisPoolHolder",
    "close_redis_pool",
    "create_redis_client",
]
