"""
Database-backed rate limiter.
Stores one failed_login_attempts row per failure; the window is a range scan
on (identity, ip_address, attempt_time).
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.core.clock import as_utc, utcnow
from interview_booking.core.config import get_settings
from interview_booking.models.audit import FailedLoginAttempt
from interview_booking.schemas.rate_limit import RateLimitStatus
from interview_booking.services.interfaces.rate_limit import RateLimitStrategy

settings = get_settings()


class DatabaseRateLimiter(RateLimitStrategy):
    """
    Record-then-count inside one transaction: the insert and the window count
    commit together, so N concurrent failures are all counted.
    """

    def __init__(
        self,
        db: AsyncSession,
        max_attempts: Optional[int] = None,
        window_minutes: Optional[int] = None,
    ):
        super().__init__(
            max_attempts or settings.RATE_LIMIT_MAX_ATTEMPTS,
            window_minutes or settings.RATE_LIMIT_WINDOW_MINUTES,
        )
        self.db = db

    async def _window(self, identity: str, origin: str, now: datetime) -> tuple[int, Optional[datetime]]:
        since = now - timedelta(minutes=self.window_minutes)
        result = await self.db.execute(
            select(func.count(FailedLoginAttempt.id), func.min(FailedLoginAttempt.attempt_time)).where(
                FailedLoginAttempt.identity == identity,
                FailedLoginAttempt.ip_address == origin,
                FailedLoginAttempt.attempt_time >= since,
            )
        )
        count, oldest = result.one()
        return count, as_utc(oldest) if oldest is not None else None

    async def check(self, identity: str, origin: str) -> RateLimitStatus:
        now = utcnow()
        count, oldest = await self._window(identity, origin, now)
        return self.decide(count, oldest, now)

    async def record_failure(self, identity: str, origin: str) -> RateLimitStatus:
        now = utcnow()
        self.db.add(FailedLoginAttempt(identity=identity, ip_address=origin, attempt_time=now))
        await self.db.flush()
        count, oldest = await self._window(identity, origin, now)
        await self.db.commit()
        return self.decide(count, oldest, now)

    async def clear(self, identity: str, origin: str) -> int:
        result = await self.db.execute(
            delete(FailedLoginAttempt)
            .where(
                FailedLoginAttempt.identity == identity,
                FailedLoginAttempt.ip_address == origin,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount
