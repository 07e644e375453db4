"""
Redis cache connection and management.

This module owns the Redis connection used for short-lived caches such as
exchange-rate lookups. The cache is optional: when Redis is unreachable every
operation degrades to a miss.
"""

import logging
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.core.config import settings

logger = logging.getLogger(__name__)


class CacheClient:
    """Redis cache client wrapper."""

    def __init__(self, client: Any | None = None):
        self._client: Any | None = client
        self._available = client is not None

    async def connect(self, redis_url: str | None = None) -> bool:
        """
        Connect to Redis server.

        Returns:
            bool: True if connection successful, False otherwise.
        """
        redis_url = redis_url or settings.redis_url
        try:
            self._client = aioredis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )

            # Test connection
            await self._client.ping()
            self._available = True
            logger.info("Redis connected successfully")
            return True

        except (RedisError, OSError) as e:
            logger.warning(f"Could not connect to Redis, cache disabled: {e}")
            self._available = False
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._available = False
            logger.info("Redis connection closed")

    @property
    def available(self) -> bool:
        """Check if Redis is available."""
        return self._available and self._client is not None

    async def get(self, key: str) -> Any | None:
        """Get value from cache."""
        if not self.available:
            return None
        try:
            return await self._client.get(key)
        except RedisError as e:
            logger.error(f"Cache get error: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set value in cache with optional TTL."""
        if not self.available:
            return False
        try:
            if ttl:
                await self._client.setex(key, ttl, value)
            else:
                await self._client.set(key, value)
            return True
        except RedisError as e:
            logger.error(f"Cache set error: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete value from cache."""
        if not self.available:
            return False
        try:
            await self._client.delete(key)
            return True
        except RedisError as e:
            logger.error(f"Cache delete error: {e}")
            return False


# Global cache client instance
cache_client = CacheClient()


async def init_cache() -> bool:
    """Initialize Redis cache connection."""
    return await cache_client.connect()


async def close_cache() -> None:
    """Close Redis cache connection."""
    await cache_client.close()
