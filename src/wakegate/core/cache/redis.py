"""Redis client configuration and connection management.

Provides async Redis client with connection pooling for
token revocation and the shared tenant registry.
"""

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool


class RedisPoolHolder:
    """Holder for the process-wide Redis connection pool."""

    pool: ConnectionPool | None = None


def create_redis_client(url: str) -> redis.Redis:  # type: ignore[type-arg]
    """Create a Redis client backed by the shared connection pool.

    Args:
        url: Redis connection URL

    Returns:
        Redis client instance
    """
    if RedisPoolHolder.pool is None:
        RedisPoolHolder.pool = ConnectionPool.from_url(
            url,
            max_connections=50,
            decode_responses=True,
        )
    return redis.Redis(connection_pool=RedisPoolHolder.pool)


async def close_redis_pool() -> None:
    """Close the Redis connection pool.

    Call this during application shutdown.
    """
    if RedisPoolHolder.pool is not None:
        await RedisPoolHolder.pool.disconnect()
        RedisPoolHolder.pool = None


class RedisCache:
    """High-level Redis cache interface.

    Provides typed methods for common caching operations.
    """

    def __init__(self, client: redis.Redis, prefix: str = "") -> None:  # type: ignore[type-arg]
        """Initialize cache with optional key prefix.

        Args:
            client: Redis client to issue commands on
            prefix: Prefix for all keys (e.g., "jwt:revoked:")
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
