"""
Temporal conflict detection for a student's confirmed interviews.

Slots are half-open intervals [start, end). Two slots overlap when
    candidate.start < existing.end AND candidate.end > existing.start
so back-to-back interviews (one ends at 10:15, next starts at 10:15) are fine.

Only meaningful inside the booking transaction: a clean result followed by a
separate write is a race, not a guarantee.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.models.booking import Booking, BookingStatus
from interview_booking.models.slot import Slot


async def find_conflicting_booking(
    db: AsyncSession,
    student_id: int,
    candidate: Slot,
) -> Optional[Booking]:
    result = await db.execute(
        select(Booking)
        .join(Slot, Slot.id == Booking.slot_id)
        .where(
            Booking.student_id == student_id,
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.slot_id != candidate.id,
            Slot.start_time < candidate.end_time,
            Slot.end_time > candidate.start_time,
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def has_conflict(db: AsyncSession, student_id: int, candidate: Slot) -> bool:
    return await find_conflicting_booking(db, student_id, candidate) is not None
