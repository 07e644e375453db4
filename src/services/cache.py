"""
Cache service.

JSON-serializing wrapper around the Redis cache client with a default TTL,
used for exchange-rate lookups.
"""

import json
import logging
import time
from typing import Any

from src.core.cache import CacheClient, cache_client

logger = logging.getLogger(__name__)


class CacheService:
    """Service for cache operations with Redis backend."""

    def __init__(self, client: CacheClient | None = None, default_ttl: int | None = None):
        """
        Initialize the cache service.

        Args:
            client: Cache client, defaults to the application-wide client
            default_ttl: TTL in seconds applied when ``set`` gets none
        """
        self.client = client or cache_client
        self.default_ttl = default_ttl

    async def get(self, key: str) -> Any | None:
        """
        Get a value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/unavailable
        """
        start_time = time.time()
        result = await self.client.get(key)
        duration_ms = (time.time() - start_time) * 1000
        if duration_ms > 100:
            logger.warning(f"Slow cache get: {key} took {duration_ms:.2f}ms")

        if result is None:
            return None
        try:
            return json.loads(result)
        except (json.JSONDecodeError, TypeError):
            return result

    async def set(
        self, key: str, value: Any, expiration: int | None = None
    ) -> bool:
        """
        Set a value in cache.

        Args:
            key: Cache key
            value: Value to cache
            expiration: Optional TTL in seconds

        Returns:
            True if successful, False otherwise
        """
        if not isinstance(value, str):
            value = json.dumps(value, default=str)
        return await self.client.set(key, value, ttl=expiration or self.default_ttl)

    async def delete(self, key: str) -> bool:
        """
        Delete a value from cache.

        Args:
            key: Cache key

        Returns:
            True if successful, False otherwise
        """
        return await self.client.delete(key)
