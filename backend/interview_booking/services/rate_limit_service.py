"""
Redis-backed rate limiter.
Implements RateLimitStrategy with a sorted set per (identity, origin) pair.

Circuit Breaker Pattern:
  On Redis failure, the limiter "fails open" (allows the attempt).
  A Redis outage must not lock every user out of logging in.
  The failure is counted in redis_connection_errors_total and logged.
"""

import os
import uuid
from datetime import datetime, timezone
from typing import Optional

from redis.exceptions import RedisError

from interview_booking.core.clock import utcnow
from interview_booking.core.config import get_settings
from interview_booking.core.logging import get_logger
from interview_booking.core.metrics import redis_connection_errors
from interview_booking.infrastructure.redis_client import get_redis
from interview_booking.schemas.rate_limit import RateLimitStatus
from interview_booking.services.interfaces.rate_limit import RateLimitStrategy

logger = get_logger(__name__)
settings = get_settings()

# Load Lua script
SCRIPT_PATH = os.path.join(os.path.dirname(__file__), '../infrastructure/rate_limit.lua')
with open(SCRIPT_PATH, 'r') as f:
    RATE_LIMIT_SCRIPT = f.read()


class RedisRateLimiter(RateLimitStrategy):
    """
    Trim, optionally add, and count run as one Lua script, so the
    check-and-increment is atomic across API workers.
    """

    key_prefix = "ratelimit"

    def __init__(
        self,
        client=None,
        max_attempts: Optional[int] = None,
        window_minutes: Optional[int] = None,
    ):
        super().__init__(
            max_attempts or settings.RATE_LIMIT_MAX_ATTEMPTS,
            window_minutes or settings.RATE_LIMIT_WINDOW_MINUTES,
        )
        self.redis = client or get_redis()
        self.script = self.redis.register_script(RATE_LIMIT_SCRIPT)

    def _key(self, identity: str, origin: str) -> str:
        return f"{self.key_prefix}:{identity}:{origin}"

    async def _run(self, identity: str, origin: str, record: bool) -> RateLimitStatus:
        now = utcnow()
        now_ms = int(now.timestamp() * 1000)
        try:
            count, oldest_ms = await self.script(
                keys=[self._key(identity, origin)],
                args=[now_ms, self.window_minutes * 60_000, 1 if record else 0, uuid.uuid4().hex],
            )
        except RedisError as e:
            # Circuit breaker: On Redis failure, fail open
            redis_connection_errors.inc()
            logger.warning("rate_limit_redis_unavailable", error=str(e))
            return self.decide(0, None, now)

        oldest = None
        if int(oldest_ms):
            oldest = datetime.fromtimestamp(int(oldest_ms) / 1000, tz=timezone.utc)
        return self.decide(int(count), oldest, now)

    async def check(self, identity: str, origin: str) -> RateLimitStatus:
        return await self._run(identity, origin, record=False)

    async def record_failure(self, identity: str, origin: str) -> RateLimitStatus:
        return await self._run(identity, origin, record=True)

    async def clear(self, identity: str, origin: str) -> int:
        key = self._key(identity, origin)
        try:
            removed = await self.redis.zcard(key)
            await self.redis.delete(key)
        except RedisError as e:
            redis_connection_errors.inc()
            logger.warning("rate_limit_redis_unavailable", error=str(e))
            return 0
        return int(removed)
