import redis.asyncio as redis
from typing import Optional
import logging

from ..config import settings

logger = logging.getLogger(__name__)

# Global Redis client
_redis_client: Optional[redis.Redis] = None


async def create_redis_client() -> redis.Redis:
    """Create and return Redis client"""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    try:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
        # Test connection
        await _redis_client.ping()
        logger.info(f"Redis client connected: {settings.redis_host}:{settings.redis_port}")
        return _redis_client
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise


async def close_redis_client():
    """Close Redis connection"""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.close()
        logger.info("Redis client closed")
        _redis_client = None


async def get_redis() -> redis.Redis:
    """Dependency for getting Redis client"""
    if _redis_client is None:
        await create_redis_client()
    return _redis_client


# A slot lock outlives the slot run but expires before the same slot comes round tomorrow
SLOT_LOCK_TTL = 6 * 3600


class RedisKeyspace:
    """Redis key layout"""

    @staticmethod
    def slot_lock(date_str: str, slot: str) -> str:
        return f"scheduler:{date_str}:{slot}"


async def acquire_slot_lock(
    redis_client: redis.Redis,
    date_str: str,
    slot: str,
    ttl: int = SLOT_LOCK_TTL,
) -> bool:
    """
    Claim the right to run a time slot for a given local date.

    Returns True for exactly one caller across all app instances.
    """
    key = RedisKeyspace.slot_lock(date_str, slot)
    acquired = await redis_client.set(key, "1", nx=True, ex=ttl)
    if not acquired:
        logger.info(f"[SCHEDULER] Slot {slot} for {date_str} already claimed by another instance")
    return bool(acquired)
