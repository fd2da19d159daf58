from datetime import date
from typing import Any, Optional

import redis.asyncio as redis
import structlog

from workshop_booking.core.config import settings

logger = structlog.get_logger(__name__)

# Deletes the key only while it still holds the caller's token.
RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisClient:
    """Redis client holding short-lived booking slot locks."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self.redis_pool = None

    async def init_redis(self):
        """Initialize Redis connection pool."""
        try:
            self.redis_pool = redis.ConnectionPool.from_url(
                self.url,
                decode_responses=True,
                retry_on_timeout=True,
                socket_keepalive=True,
            )

            async with redis.Redis(connection_pool=self.redis_pool) as r:
                await r.ping()
                logger.info("Redis connection established")

        except Exception as e:
            logger.error("Failed to connect to Redis", exc_info=e)
            raise

    async def get_redis(self) -> redis.Redis:
        """Get Redis client instance."""
        if not self.redis_pool:
            await self.init_redis()
        return redis.Redis(connection_pool=self.redis_pool)

    @staticmethod
    def slot_lock_key(workshop_id: Any, scheduled_date: date) -> str:
        # One lock per workshop day; bookings on the same day can overlap.
        return f"slot_lock:{workshop_id}:{scheduled_date.isoformat()}"

    async def acquire_slot_lock(
        self,
        workshop_id: Any,
        scheduled_date: date,
        owner: str,
        ttl_seconds: Optional[int] = None,
    ) -> bool:
        """Take the day lock; False if another booking already holds it."""
        key = self.slot_lock_key(workshop_id, scheduled_date)
        client = await self.get_redis()
        acquired = await client.set(
            key, owner, nx=True, ex=ttl_seconds or settings.SLOT_LOCK_SECONDS
        )
        if not acquired:
            logger.info("Slot lock busy", key=key)
        return bool(acquired)

    async def release_slot_lock(
        self, workshop_id: Any, scheduled_date: date, owner: str
    ) -> bool:
        """Release the day lock if ``owner`` still holds it."""
        key = self.slot_lock_key(workshop_id, scheduled_date)
        client = await self.get_redis()
        released = await client.eval(RELEASE_LOCK_SCRIPT, 1, key, owner)
        if not released:
            logger.warning("Slot lock not held by owner", key=key, owner=owner)
            return False
        return True

    async def is_slot_locked(self, workshop_id: Any, scheduled_date: date) -> bool:
        key = self.slot_lock_key(workshop_id, scheduled_date)
        client = await self.get_redis()
        return await client.exists(key) > 0


# Global Redis client instance
redis_client = RedisClient()
