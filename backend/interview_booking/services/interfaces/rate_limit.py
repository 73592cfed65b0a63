"""
Failed-login rate limiting strategy interface.
Allows swapping the counter store without touching the API layer.
"""

import math
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from interview_booking.schemas.rate_limit import RateLimitStatus


class RateLimitStrategy(ABC):
    """
    Sliding-window counter of failed authentication attempts per
    (identity, origin) pair.

    Implementations:
    - DatabaseRateLimiter: rows in failed_login_attempts (default)
    - RedisRateLimiter: one sorted set per pair, trimmed by a Lua script
    """

    def __init__(self, max_attempts: int, window_minutes: int):
        self.max_attempts = max_attempts
        self.window_minutes = window_minutes

    @abstractmethod
    async def check(self, identity: str, origin: str) -> RateLimitStatus:
        """
        Current decision for the pair, without recording anything.
        Called before credentials are verified.
        """
        pass

    @abstractmethod
    async def record_failure(self, identity: str, origin: str) -> RateLimitStatus:
        """
        Record one failed attempt and return the decision that now applies,
        as one atomic step so concurrent failures can't undercount.
        """
        pass

    @abstractmethod
    async def clear(self, identity: str, origin: str) -> int:
        """Forget the pair's attempts (after a successful login). Returns rows removed."""
        pass

    def decide(self, attempt_count: int, oldest: Optional[datetime], now: datetime) -> RateLimitStatus:
        """Turn a window count into a decision. Shared by every backend."""
        remaining = max(self.max_attempts - attempt_count, 0)
        if attempt_count < self.max_attempts:
            return RateLimitStatus(
                allowed=True,
                attempt_count=attempt_count,
                remaining_attempts=remaining,
                wait_time_minutes=0,
                message="Rate limit check passed",
            )

        # Locked until the oldest attempt in the window ages out
        wait_minutes = self.window_minutes
        if oldest is not None:
            elapsed = (now - oldest).total_seconds()
            wait_minutes = math.ceil((self.window_minutes * 60 - elapsed) / 60)
        wait_minutes = min(max(wait_minutes, 1), self.window_minutes)
        return RateLimitStatus(
            allowed=False,
            attempt_count=attempt_count,
            remaining_attempts=0,
            wait_time_minutes=wait_minutes,
            message=f"Too many attempts. Please try again in {wait_minutes} minute(s).",
        )
