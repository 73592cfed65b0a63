"""
Rate limiter strategy factory.
Configures which failed-login counter store to use.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.core.config import get_settings
from interview_booking.db.session import get_db
from interview_booking.services.interfaces.rate_limit import RateLimitStrategy
from interview_booking.services.interfaces.database_rate_limit import DatabaseRateLimiter
from interview_booking.services.rate_limit_service import RedisRateLimiter

settings = get_settings()


# Singleton instance (the Redis limiter holds no per-request state)
_redis_limiter: RedisRateLimiter = None


def get_redis_limiter() -> RedisRateLimiter:
    global _redis_limiter
    if _redis_limiter is None:
        _redis_limiter = RedisRateLimiter()
    return _redis_limiter


async def get_rate_limiter(db: AsyncSession = Depends(get_db)) -> RateLimitStrategy:
    """
    Get configured rate limiter.

    Strategy selection via RATE_LIMIT_BACKEND:
    - database: DatabaseRateLimiter on the request's session (default)
    - redis: RedisRateLimiter shared by all requests
    """
    if settings.RATE_LIMIT_BACKEND == "redis" and settings.REDIS_ENABLED:
        return get_redis_limiter()
    return DatabaseRateLimiter(db)
