# fitrelay/services/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from fitrelay.config import settings
from fitrelay.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FastRedisClient:
    """Pooled async Redis client used for the leaderboard view cache"""

    def __init__(self, url: str | None = None, max_connections: int | None = None):
        self.url = url
        self.max_connections = max_connections
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        redis_url = self.url or settings.REDIS_URL
        max_connections = self.max_connections or settings.REDIS_MAX_CONNECTIONS

        try:
            logger.info("Attempting Redis connection", url_preview=redis_url[:30] + "...")

            self.pool = ConnectionPool.from_url(
                redis_url,
                max_connections=max_connections,
                retry_on_timeout=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                health_check_interval=30,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info("Fast Redis client initialized successfully", max_connections=max_connections)

        except (redis.RedisError, OSError) as e:
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
        except (redis.RedisError, OSError) as e:
            logger.error("Error closing Redis client", error=str(e))

    async def _ensure_initialized(self):
        """Ensure Redis is initialized, fallback if not"""
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            await self._ensure_initialized()
            result = await self.client.ping()
            return bool(result)
        except (RuntimeError, redis.RedisError, OSError) as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> str | None:
        """Get value - with fallback handling"""
        try:
            await self._ensure_initialized()
            result = await self.client.get(key)
            return result if result else None
        except (RuntimeError, redis.RedisError, OSError) as e:
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
        except (RuntimeError, redis.RedisError, OSError) as e:
            logger.error("Redis SET failed", key=key[:40], error=str(e))
            return False

    async def delete(self, *keys: str) -> bool:
        """Delete keys - with fallback handling"""
        if not keys:
            return False
        try:
            await self._ensure_initialized()
            result = await self.client.delete(*keys)
            return result > 0
        except (RuntimeError, redis.RedisError, OSError) as e:
            logger.error("Redis DELETE failed", keys=len(keys), error=str(e))
            return False


# Global instance
fast_redis = FastRedisClient()
