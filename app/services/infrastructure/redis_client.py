# app/services/infrastructure/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Pooled async Redis client used by the Redis-backed idempotency ledger."""

    def __init__(self, url: str | None = None):
        self.url = url
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        redis_url = self.url or settings.REDIS_URL
        if not redis_url:
            raise RuntimeError("REDIS_URL is not configured")

        try:
            logger.info("Attempting Redis connection", url_preview=redis_url[:30] + "...")

            pool_config = settings.get_redis_config()
            self.pool = ConnectionPool.from_url(
                redis_url,
                max_connections=pool_config["max_connections"],
                retry_on_timeout=True,
                socket_connect_timeout=pool_config["socket_connect_timeout"],
                socket_timeout=pool_config["socket_timeout"],
                health_check_interval=30,
                decode_responses=True,  # Auto-decode strings
            )

            self.client = redis.Redis(connection_pool=self.pool)

            # Test connection
            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info("Redis client initialized successfully", **pool_config)

        except Exception as e:
            logger.error("Failed to initialize Redis client", error=str(e))
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
            logger.info("Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    async def _ensure_initialized(self):
        """Ensure Redis is initialized, fallback if not"""
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
            logger.error("Redis GET failed", key=key[:60], error=str(e))
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
            logger.error("Redis SET failed", key=key[:60], error=str(e))
            return False

    async def delete(self, *keys: str) -> bool:
        """Delete keys - with fallback handling"""
        if not keys:
            return False
        try:
            await self._ensure_initialized()
            result = await self.client.delete(*keys)
            return result > 0
        except Exception as e:
            logger.error("Redis DELETE failed", key_count=len(keys), error=str(e))
            return False

    async def push_bounded(self, list_key: str, value: str, max_len: int) -> list[str]:
        """
        Append ``value`` to a list and pop from the head until it holds at
        most ``max_len`` items. Returns the popped (oldest) values.
        """
        try:
            await self._ensure_initialized()
            length = await self.client.rpush(list_key, value)
            overflow = length - max_len
            if overflow <= 0:
                return []

            evicted = await self.client.lpop(list_key, overflow)
            if evicted is None:
                return []
            return evicted if isinstance(evicted, list) else [evicted]
        except Exception as e:
            logger.error("Redis bounded push failed", key=list_key[:60], error=str(e))
            return []
