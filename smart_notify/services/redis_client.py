# smart_notify/services/redis_client.py
import json
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from smart_notify.config import settings
from smart_notify.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FastRedisClient:
    """Pooled Redis client for decision cache, activity records and rate counters"""

    # INCR and start a fresh window when the key is new (or its TTL was lost).
    # Returns {count, ttl_seconds} in one round trip.
    WINDOWED_COUNTER_LUA = """
    local count = redis.call('INCR', KEYS[1])
    local ttl = redis.call('TTL', KEYS[1])
    if count == 1 or ttl < 0 then
        redis.call('EXPIRE', KEYS[1], tonumber(ARGV[1]))
        ttl = tonumber(ARGV[1])
    end
    return {count, ttl}
    """

    def __init__(self):
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        try:
            logger.info("Attempting Redis connection", url_preview=settings.REDIS_URL[:30] + "...")

            self.pool = ConnectionPool.from_url(
                settings.REDIS_URL,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                retry_on_timeout=True,
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,
            )

            self.client = redis.Redis(connection_pool=self.pool)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info(
                "Fast Redis client initialized successfully",
                max_connections=settings.REDIS_MAX_CONNECTIONS,
            )

        except Exception as e:
            logger.error("Failed to initialize fast Redis client", error=str(e))
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self._initialized = False
            logger.info("Fast Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    async def _ensure_initialized(self):
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()
            if not self._initialized:
                raise ConnectionError("Redis client not available")

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            await self._ensure_initialized()
            result = await self.client.ping()
            return bool(result)
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> str | None:
        """Get value - with fallback handling"""
        try:
            await self._ensure_initialized()
            result = await self.client.get(key)
            return result if result else None
        except Exception as e:
            logger.error("Redis GET failed", key=key[:40], error=str(e))
            return None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        """Set value with TTL - with fallback handling"""
        try:
            await self._ensure_initialized()

            if ttl_s:
                result = await self.client.setex(key, ttl_s, value)
            else:
                result = await self.client.set(key, value)
            return bool(result)
        except Exception as e:
            logger.error("Redis SET failed", key=key[:40], error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        """Delete key - with fallback handling"""
        try:
            await self._ensure_initialized()
            result = await self.client.delete(key)
            return result > 0
        except Exception as e:
            logger.error("Redis DELETE failed", key=key[:40], error=str(e))
            return False

    async def get_json(self, key: str) -> dict[str, Any] | None:
        """Get and decode a JSON document. Undecodable payloads read as missing."""
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Redis value is not valid JSON", key=key[:40], error=str(e))
            return None

    async def set_json(self, key: str, value: dict[str, Any], ttl_s: int | None = None) -> bool:
        return await self.set_with_ttl(key, json.dumps(value, default=str), ttl_s)

    async def incr_in_window(self, key: str, window_s: int) -> tuple[int, int]:
        """
        Atomically increment a windowed counter.

        Unlike the other helpers this one raises on failure so callers can
        decide between failing open and failing closed.

        Returns:
            (count after increment, seconds until the window resets)
        """
        await self._ensure_initialized()
        result = await self.client.eval(self.WINDOWED_COUNTER_LUA, 1, key, window_s)
        return int(result[0]), int(result[1])


# Global instance
fast_redis = FastRedisClient()
