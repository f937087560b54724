"""Redis configuration and connection setup"""
import redis
import redis.asyncio as aioredis
from typing import Optional

from salon_booking.config.settings import get_settings

# Redis connection pools
_redis_pool: Optional[aioredis.ConnectionPool] = None
_sync_redis_pool: Optional[redis.ConnectionPool] = None


def get_redis_pool() -> aioredis.ConnectionPool:
    """Get or create the asyncio Redis connection pool"""
    global _redis_pool
    if _redis_pool is None:
        settings = get_settings()
        _redis_pool = aioredis.ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            retry_on_timeout=True,
        )
    return _redis_pool


async def get_redis() -> aioredis.Redis:
    """Get Redis client from pool"""
    pool = get_redis_pool()
    return aioredis.Redis(connection_pool=pool)


def get_sync_redis() -> redis.Redis:
    """Blocking Redis client, used from worker threads and Celery tasks"""
    global _sync_redis_pool
    if _sync_redis_pool is None:
        settings = get_settings()
        _sync_redis_pool = redis.ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            retry_on_timeout=True,
        )
    return redis.Redis(connection_pool=_sync_redis_pool)


class RedisKeys:
    """Redis key patterns for consistent naming"""

    # OAuth consent round-trip
    OAUTH_STATE = "oauth:state:{state}"

    # Per-credential token refresh lock
    CREDENTIAL_REFRESH_LOCK = "lock:calendar_credential:{owner_ref}:refresh"

    # Bulk resync cancellation flag
    RESYNC_CANCEL = "resync:{run_id}:cancel"
