# clientpulse/services/infrastructure/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from clientpulse.config import settings
from clientpulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FastRedisClient:
    """Pooled Redis client backing the analysis job queue."""

    def __init__(self, url: str | None = None):
        self.url = url
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        try:
            redis_url = self.url or settings.REDIS_URL

            logger.info("Attempting Redis connection", url_preview=redis_url[:30] + "...")

            self.pool = ConnectionPool.from_url(
                redis_url,
                max_connections=20,
                retry_on_timeout=True,
                socket_connect_timeout=10,
                # Blocking pops wait up to the receive timeout; keep socket timeout above it
                socket_timeout=settings.ANALYSIS_RECEIVE_TIMEOUT_SECONDS + 10,
                health_check_interval=30,
                decode_responses=True,
            )

            self.client = redis.Redis(connection_pool=self.pool)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info("Redis client initialized successfully", max_connections=20)

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
        """Ensure Redis is initialized"""
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

    async def push_to_list(self, key: str, value: str, left: bool = True) -> bool:
        """Push a value onto a Redis list (used as the ready queue)."""
        try:
            await self._ensure_initialized()
            if left:
                result = await self.client.lpush(key, value)
            else:
                result = await self.client.rpush(key, value)
            return result > 0
        except Exception as e:
            logger.error(
                "Redis LIST push failed", key=key[:30], value_preview=value[:30], error=str(e)
            )
            return False

    async def pop_to_inflight(
        self, source_key: str, inflight_key: str, timeout: int = 0
    ) -> str | None:
        """
        Pop a value from a list and push to an in-flight list (acked queue).

        Uses BRPOPLPUSH for blocking behavior to avoid losing jobs on worker crash.
        """
        try:
            await self._ensure_initialized()
            if timeout > 0:
                payload = await self.client.brpoplpush(source_key, inflight_key, timeout=timeout)
            else:
                payload = await self.client.rpoplpush(source_key, inflight_key)
            return payload
        except Exception as e:
            logger.error(
                "Redis LIST inflight pop failed",
                source_key=source_key[:30],
                inflight_key=inflight_key[:30],
                error=str(e),
            )
            return None

    async def ack_from_inflight(self, inflight_key: str, value: str) -> int | None:
        """Remove a processed item from the in-flight list; None when Redis failed."""
        try:
            await self._ensure_initialized()
            return await self.client.lrem(inflight_key, 1, value)
        except Exception as e:
            logger.error(
                "Redis inflight ack failed",
                inflight_key=inflight_key[:30],
                value_preview=value[:30],
                error=str(e),
            )
            return None

    async def requeue_from_inflight(
        self, inflight_key: str, destination_key: str, value: str
    ) -> bool:
        """Move an item from the in-flight list back to the main queue."""
        try:
            await self._ensure_initialized()
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.lrem(inflight_key, 1, value)
                pipe.lpush(destination_key, value)
                results = await pipe.execute()
            return bool(results and results[-1] is not None)
        except Exception as e:
            logger.error(
                "Redis inflight requeue failed",
                inflight_key=inflight_key[:30],
                destination_key=destination_key[:30],
                value_preview=value[:30],
                error=str(e),
            )
            return False

    async def list_range(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        """Return a range of values from a list."""
        try:
            await self._ensure_initialized()
            result = await self.client.lrange(key, start, end)
            return [str(item) for item in result] if result else []
        except Exception as e:
            logger.error("Redis LRANGE failed", key=key[:30], error=str(e))
            return []

    async def add_to_sorted_set(self, key: str, value: str, score: float) -> bool:
        """Add a member to a sorted set (delayed jobs keyed by ready-at epoch)."""
        try:
            await self._ensure_initialized()
            await self.client.zadd(key, {value: score})
            return True
        except Exception as e:
            logger.error("Redis ZADD failed", key=key[:30], error=str(e))
            return False

    async def move_due_to_list(self, sorted_key: str, list_key: str, max_score: float) -> int:
        """
        Move members scored <= max_score from a sorted set onto a list.

        Only the caller whose ZREM removes a member pushes it, so concurrent
        consumers never promote the same member twice.
        """
        try:
            await self._ensure_initialized()
            due = await self.client.zrangebyscore(sorted_key, "-inf", max_score)
            moved = 0
            for member in due:
                if await self.client.zrem(sorted_key, member):
                    await self.client.lpush(list_key, member)
                    moved += 1
            return moved
        except Exception as e:
            logger.error("Redis delayed promotion failed", key=sorted_key[:30], error=str(e))
            return 0


# Global instance
fast_redis = FastRedisClient()


async def redis_ping() -> bool:
    return await fast_redis.ping()
