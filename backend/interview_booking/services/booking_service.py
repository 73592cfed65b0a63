"""
Booking ledger: concurrency-safe interview booking.

CONCURRENCY STRATEGY: Optimistic Locking with Retry
====================================================

Problem:
  Two students try to take the last seat of a slot simultaneously. Both count
  0 confirmed bookings, both insert, the slot is overbooked.
  Or one student books two overlapping slots from two tabs. Both conflict
  checks see nothing, both insert, the student is double-booked.

Solution:
  Two version counters act as compare-and-swap keys:
    - slots.version                        (per slot)
    - student_booking_ledgers.version      (per student, across events)

  1. Read the slot and the student's ledger, remembering both versions
  2. Run every check (phase/limit, capacity, duplicates, time conflict)
     against committed state
  3. UPDATE slots SET version = version + 1 WHERE id = :id AND version = :v
     UPDATE ledger SET version = version + 1 WHERE ... AND version = :lv
     (a missing ledger row is INSERTed; the unique key plays the same role)
  4. If either statement affected 0 rows, someone booked or cancelled on the
     same slot or for the same student since step 1 -> roll back and retry
  5. Insert the confirmed booking and commit

  Any writer that touches the same slot or the same student bumps one of the
  versions, so the checks of a committed booking were always made against
  the state it committed on top of. The ledger is per student rather than per
  event because the time-conflict check spans events. Different slots and
  different students never contend.

  Lock/serialisation errors from the database (a writer waiting too long, or
  SQLite refusing a lock upgrade) are treated like a lost compare-and-swap.

Business rejections (full slot, over limit, conflict, ...) are returned as a
BookingResult, never raised. Unknown ids raise 404. Exhausting the retries
raises 503 so the caller can retry; a retried book() can't double-book.
"""

import asyncio
import random
import time
from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.core.config import get_settings
from interview_booking.core.logging import get_logger
from interview_booking.core.metrics import booking_latency, record_booking_attempt, record_booking_retry
from interview_booking.models.booking import Booking, BookingStatus, StudentLedger
from interview_booking.models.company import Offer
from interview_booking.models.event import Event, Phase
from interview_booking.models.slot import Slot
from interview_booking.models.user import User
from interview_booking.schemas.booking import BookingResult, RejectionCode
from interview_booking.services.audit_service import AttemptContext, AttemptOutcome, record_attempt
from interview_booking.services.conflict_checker import has_conflict
from interview_booking.services.phase_service import evaluate_booking_limit

logger = get_logger(__name__)
settings = get_settings()


class StaleVersion(Exception):
    """Another transaction moved a version we read; the attempt must be redone."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


async def count_slot_confirmed(db: AsyncSession, slot_id: int) -> int:
    result = await db.execute(
        select(func.count(Booking.id)).where(
            Booking.slot_id == slot_id,
            Booking.status == BookingStatus.CONFIRMED.value,
        )
    )
    return result.scalar_one()


async def _load_slot(db: AsyncSession, slot_id: int) -> Slot:
    result = await db.execute(
        select(Slot).where(Slot.id == slot_id).execution_options(populate_existing=True)
    )
    slot = result.scalar_one_or_none()
    if not slot:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Slot {slot_id} not found",
        )
    return slot


async def _load_student(db: AsyncSession, student_id: int) -> User:
    result = await db.execute(
        select(User).where(User.id == student_id).execution_options(populate_existing=True)
    )
    student = result.scalar_one_or_none()
    if not student or not student.is_student or not student.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Student {student_id} not found",
        )
    return student


async def _load_ledger(db: AsyncSession, student_id: int) -> Optional[StudentLedger]:
    result = await db.execute(
        select(StudentLedger)
        .where(StudentLedger.student_id == student_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _has_confirmed(db: AsyncSession, *criteria) -> bool:
    result = await db.execute(
        select(Booking.id)
        .join(Slot, Slot.id == Booking.slot_id)
        .where(Booking.status == BookingStatus.CONFIRMED.value, *criteria)
        .limit(1)
    )
    return result.first() is not None


async def _claim_versions(
    db: AsyncSession,
    slot: Slot,
    student_id: int,
    ledger: Optional[StudentLedger],
) -> None:
    slot_swap = await db.execute(
        update(Slot)
        .where(Slot.id == slot.id, Slot.version == slot.version)
        .values(version=Slot.version + 1)
        .execution_options(synchronize_session=False)
    )
    if slot_swap.rowcount != 1:
        raise StaleVersion("slot_version")

    if ledger is None:
        db.add(StudentLedger(student_id=student_id, version=1))
        await db.flush()
        return

    ledger_swap = await db.execute(
        update(StudentLedger)
        .where(StudentLedger.id == ledger.id, StudentLedger.version == ledger.version)
        .values(version=StudentLedger.version + 1)
        .execution_options(synchronize_session=False)
    )
    if ledger_swap.rowcount != 1:
        raise StaleVersion("ledger_version")


def _rejection(code: RejectionCode, message: str, phase: Optional[int] = None) -> BookingResult:
    return BookingResult(success=False, message=message, error_code=code, phase=phase)


async def _attempt_booking(
    db: AsyncSession,
    student_id: int,
    slot_id: int,
    offer_id: Optional[int],
    notes: Optional[str],
    now: Optional[datetime],
    outcome: AttemptOutcome,
) -> BookingResult:
    """One pass of read-check-swap-insert. Raises StaleVersion on a lost race."""
    student = await _load_student(db, student_id)
    slot = await _load_slot(db, slot_id)
    event_result = await db.execute(
        select(Event).where(Event.id == slot.event_id).execution_options(populate_existing=True)
    )
    event = event_result.scalar_one()
    ledger = await _load_ledger(db, student.id)
    outcome.event_id = event.id

    confirmed = await count_slot_confirmed(db, slot.id)
    outcome.slot_available_capacity = max(slot.capacity - confirmed, 0)

    if not slot.is_active or not event.is_active:
        return _rejection(RejectionCode.SLOT_INACTIVE, "This slot is no longer available")

    # 1. Phase and per-student ceiling, from committed state
    limit = await evaluate_booking_limit(db, student, event, now)
    outcome.booking_phase = limit.phase
    outcome.student_booking_count = limit.current_count
    if not limit.can_book:
        if limit.phase in (Phase.NOT_STARTED, Phase.CLOSED):
            code = RejectionCode.PHASE_CLOSED
        elif limit.phase == Phase.PHASE_1 and student.is_deprioritized:
            code = RejectionCode.DEPRIORITIZED_PHASE1
        else:
            code = RejectionCode.LIMIT_EXCEEDED
        return _rejection(code, limit.message, limit.phase)

    if await _has_confirmed(db, Booking.student_id == student.id, Booking.slot_id == slot.id):
        return _rejection(
            RejectionCode.ALREADY_BOOKED, "You already have a booking for this time slot", limit.phase
        )

    # 2. Live capacity
    if confirmed >= slot.capacity:
        return _rejection(
            RejectionCode.SLOT_FULL,
            f"This slot is fully booked ({confirmed}/{slot.capacity} spots taken)",
            limit.phase,
        )

    if settings.ONE_BOOKING_PER_COMPANY and await _has_confirmed(
        db,
        Booking.student_id == student.id,
        Booking.event_id == event.id,
        Slot.company_id == slot.company_id,
    ):
        return _rejection(
            RejectionCode.COMPANY_ALREADY_BOOKED,
            "You already have a booking with this company for this event",
            limit.phase,
        )

    # 3. Overlap with the student's other confirmed interviews
    if await has_conflict(db, student.id, slot):
        return _rejection(
            RejectionCode.TIME_CONFLICT, "This time slot conflicts with another booking", limit.phase
        )

    offer_id = offer_id if offer_id is not None else slot.offer_id
    if offer_id is not None:
        offer_result = await db.execute(select(Offer).where(Offer.id == offer_id))
        offer = offer_result.scalar_one_or_none()
        if not offer or not offer.is_active or offer.company_id != slot.company_id:
            return _rejection(RejectionCode.OFFER_INACTIVE, "Offer not found or inactive", limit.phase)

    # 4. Claim both versions, then write
    await _claim_versions(db, slot, student.id, ledger)

    booking = Booking(
        student_id=student.id,
        slot_id=slot.id,
        event_id=event.id,
        offer_id=offer_id,
        status=BookingStatus.CONFIRMED.value,
        booking_phase=limit.phase,
        notes=notes,
    )
    db.add(booking)
    await db.flush()
    await db.commit()

    remaining = slot.capacity - confirmed - 1
    outcome.slot_available_capacity = remaining
    outcome.student_booking_count = limit.current_count + 1
    return BookingResult(
        success=True,
        booking_id=booking.id,
        message=f"Interview booked successfully! {remaining} spot(s) remaining",
        phase=limit.phase,
    )


async def book_slot(
    db: AsyncSession,
    student_id: int,
    slot_id: int,
    offer_id: Optional[int] = None,
    notes: Optional[str] = None,
    context: Optional[AttemptContext] = None,
    now: Optional[datetime] = None,
) -> BookingResult:
    """
    Book a slot for a student as one atomic unit, retrying the whole
    read-check-write sequence up to BOOKING_MAX_RETRIES times on contention.
    Every call appends one BookingAttempt, whatever the outcome.
    """
    started = time.perf_counter()
    outcome = AttemptOutcome(student_id=student_id, slot_id=slot_id, context=context or AttemptContext())

    try:
        await _load_student(db, student_id)
        result = None
        for attempt in range(1, settings.BOOKING_MAX_RETRIES + 1):
            try:
                result = await _attempt_booking(db, student_id, slot_id, offer_id, notes, now, outcome)
                break
            except (StaleVersion, IntegrityError, OperationalError) as exc:
                await db.rollback()
                reason = exc.reason if isinstance(exc, StaleVersion) else (
                    "integrity" if isinstance(exc, IntegrityError) else "db_lock"
                )
                outcome.retries = attempt
                record_booking_retry(reason)
                logger.info(
                    "booking_retry",
                    student_id=student_id,
                    slot_id=slot_id,
                    attempt=attempt,
                    reason=reason,
                )
                # Jittered exponential backoff so retrying writers spread out
                delay = settings.BOOKING_RETRY_BASE_DELAY * (2 ** (attempt - 1))
                await asyncio.sleep(delay * random.uniform(0.5, 1.5))

        if result is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Booking failed due to high demand. Please try again.",
                headers={"Retry-After": "1"},
            )
    except HTTPException as exc:
        outcome.error_code = (
            RejectionCode.CONTENTION.value
            if exc.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
            else "NOT_FOUND"
        )
        outcome.error_message = str(exc.detail)
        outcome.response_time_ms = int((time.perf_counter() - started) * 1000)
        await record_attempt(db, outcome)
        record_booking_attempt(outcome.error_code)
        logger.warning(
            "booking_failed",
            student_id=student_id,
            slot_id=slot_id,
            error_code=outcome.error_code,
            detail=exc.detail,
        )
        raise

    elapsed = time.perf_counter() - started
    booking_latency.observe(elapsed)
    outcome.success = result.success
    outcome.error_code = result.error_code.value if result.error_code else None
    outcome.error_message = None if result.success else result.message
    outcome.response_time_ms = int(elapsed * 1000)
    await record_attempt(db, outcome)
    record_booking_attempt("success" if result.success else outcome.error_code)

    if result.success:
        logger.info(
            "booking_created",
            booking_id=result.booking_id,
            student_id=student_id,
            slot_id=slot_id,
            event_id=outcome.event_id,
            phase=result.phase,
            retries=outcome.retries,
        )
    else:
        logger.info(
            "booking_rejected",
            student_id=student_id,
            slot_id=slot_id,
            event_id=outcome.event_id,
            error_code=outcome.error_code,
            phase=result.phase,
        )
    return result


async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    result = await db.execute(
        select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )
    return booking


async def get_student_bookings(
    db: AsyncSession,
    student_id: int,
    event_id: Optional[int] = None,
    include_cancelled: bool = True,
) -> list[Booking]:
    """Get a student's bookings, newest first."""
    query = select(Booking).where(Booking.student_id == student_id)
    if event_id is not None:
        query = query.where(Booking.event_id == event_id)
    if not include_cancelled:
        query = query.where(Booking.status == BookingStatus.CONFIRMED.value)
    result = await db.execute(query.order_by(Booking.created_at.desc(), Booking.id.desc()))
    return list(result.scalars().all())
