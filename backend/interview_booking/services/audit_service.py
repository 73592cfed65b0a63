"""
Booking attempt log.

Every `book()` call ends with exactly one attempt row, written in its own
transaction after the booking transaction has committed or rolled back, so the
log records rejections and infrastructure failures too.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.core.logging import get_logger
from interview_booking.models.audit import BookingAttempt

logger = get_logger(__name__)

MAX_LOG_RETRIES = 3


@dataclass
class AttemptContext:
    """Client details the HTTP layer knows and the engine doesn't."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class AttemptOutcome:
    student_id: Optional[int]
    slot_id: Optional[int]
    event_id: Optional[int] = None
    success: bool = False
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    booking_phase: Optional[int] = None
    student_booking_count: Optional[int] = None
    slot_available_capacity: Optional[int] = None
    retries: int = 0
    response_time_ms: Optional[int] = None
    context: AttemptContext = field(default_factory=AttemptContext)


async def record_attempt(db: AsyncSession, outcome: AttemptOutcome) -> BookingAttempt:
    """Append one attempt row and commit it."""
    for attempt in range(1, MAX_LOG_RETRIES + 1):
        row = BookingAttempt(
            student_id=outcome.student_id,
            slot_id=outcome.slot_id,
            event_id=outcome.event_id,
            success=outcome.success,
            error_code=outcome.error_code,
            error_message=(outcome.error_message or "")[:500] or None,
            booking_phase=outcome.booking_phase,
            student_booking_count=outcome.student_booking_count,
            slot_available_capacity=outcome.slot_available_capacity,
            retries=outcome.retries,
            response_time_ms=outcome.response_time_ms,
            ip_address=outcome.context.ip_address,
            user_agent=(outcome.context.user_agent or "")[:500] or None,
        )
        db.add(row)
        try:
            await db.commit()
            return row
        except OperationalError:
            # Database briefly locked by a concurrent writer
            await db.rollback()
            if attempt == MAX_LOG_RETRIES:
                raise
            logger.info("attempt_log_retry", attempt=attempt, slot_id=outcome.slot_id)
            await asyncio.sleep(0.01 * attempt)


async def list_attempts(
    db: AsyncSession,
    student_id: Optional[int] = None,
    slot_id: Optional[int] = None,
    event_id: Optional[int] = None,
    success: Optional[bool] = None,
    limit: int = 100,
) -> list[BookingAttempt]:
    query = select(BookingAttempt)
    if student_id is not None:
        query = query.where(BookingAttempt.student_id == student_id)
    if slot_id is not None:
        query = query.where(BookingAttempt.slot_id == slot_id)
    if event_id is not None:
        query = query.where(BookingAttempt.event_id == event_id)
    if success is not None:
        query = query.where(BookingAttempt.success.is_(success))
    result = await db.execute(
        query.order_by(BookingAttempt.created_at.desc(), BookingAttempt.id.desc()).limit(limit)
    )
    return list(result.scalars().all())
