"""
Cancellation and slot activation.

A cancellation is a conditional UPDATE (status confirmed -> cancelled), so two
concurrent cancels of the same booking can't both take effect and a cancel of
an already-cancelled booking is a successful no-op. It bumps the slot and
ledger versions so an in-flight booking that read the old state retries
against the freed seat instead of committing on stale counts.
"""

import asyncio
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.core.clock import utcnow
from interview_booking.core.config import get_settings
from interview_booking.core.logging import get_logger
from interview_booking.core.metrics import booking_cancellations
from interview_booking.models.booking import Booking, BookingStatus, StudentLedger
from interview_booking.models.slot import Slot
from interview_booking.schemas.booking import CancelResult
from interview_booking.schemas.slot import SlotActiveResult, SlotResponse

logger = get_logger(__name__)
settings = get_settings()


async def _bump_slot(db: AsyncSession, slot_id: int) -> None:
    await db.execute(
        update(Slot)
        .where(Slot.id == slot_id)
        .values(version=Slot.version + 1)
        .execution_options(synchronize_session=False)
    )


async def _bump_ledgers(db: AsyncSession, student_ids: list[int]) -> None:
    if not student_ids:
        return
    await db.execute(
        update(StudentLedger)
        .where(StudentLedger.student_id.in_(student_ids))
        .values(version=StudentLedger.version + 1)
        .execution_options(synchronize_session=False)
    )


def _noop(booking_id: int) -> CancelResult:
    booking_cancellations.labels(result="noop").inc()
    return CancelResult(
        success=True,
        message="Booking is already cancelled",
        booking_id=booking_id,
        status=BookingStatus.CANCELLED.value,
    )


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    actor_id: int,
    is_admin: bool = False,
    reason: Optional[str] = None,
) -> CancelResult:
    """
    Cancel a confirmed booking. Only the booking's student or an admin may
    cancel; to anyone else the booking does not exist.
    """
    for attempt in range(1, settings.BOOKING_MAX_RETRIES + 1):
        result = await db.execute(
            select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if not booking or (not is_admin and booking.student_id != actor_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Booking not found or you are not authorized",
            )
        if booking.status == BookingStatus.CANCELLED.value:
            return _noop(booking_id)

        try:
            swap = await db.execute(
                update(Booking)
                .where(Booking.id == booking.id, Booking.status == BookingStatus.CONFIRMED.value)
                .values(
                    status=BookingStatus.CANCELLED.value,
                    cancelled_at=utcnow(),
                    cancelled_by=actor_id,
                    cancel_reason=reason,
                )
                .execution_options(synchronize_session=False)
            )
            if swap.rowcount == 0:
                # Someone else cancelled it between our read and write
                await db.rollback()
                return _noop(booking_id)

            await _bump_slot(db, booking.slot_id)
            await _bump_ledgers(db, [booking.student_id])
            await db.commit()
        except OperationalError:
            await db.rollback()
            logger.info("cancellation_retry", booking_id=booking_id, attempt=attempt)
            await asyncio.sleep(settings.BOOKING_RETRY_BASE_DELAY * attempt)
            continue

        booking_cancellations.labels(result="cancelled").inc()
        logger.info(
            "booking_cancelled",
            booking_id=booking.id,
            student_id=booking.student_id,
            slot_id=booking.slot_id,
            cancelled_by=actor_id,
            reason=reason,
        )
        return CancelResult(
            success=True,
            message="Booking cancelled successfully",
            booking_id=booking.id,
            status=BookingStatus.CANCELLED.value,
        )

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Cancellation failed due to high demand. Please try again.",
        headers={"Retry-After": "1"},
    )


async def set_slot_active(
    db: AsyncSession,
    slot_id: int,
    is_active: bool,
    actor_id: Optional[int] = None,
    cancel_bookings: bool = False,
) -> SlotActiveResult:
    """
    Activate or deactivate a slot. Deactivating a slot that still holds
    confirmed bookings is refused unless `cancel_bookings` is set, in which
    case those bookings are cancelled in the same transaction.
    """
    for attempt in range(1, settings.BOOKING_MAX_RETRIES + 1):
        result = await db.execute(
            select(Slot).where(Slot.id == slot_id).execution_options(populate_existing=True)
        )
        slot = result.scalar_one_or_none()
        if not slot:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Slot {slot_id} not found",
            )

        cancelled_students = []
        if not is_active:
            confirmed = await db.execute(
                select(Booking.student_id).where(
                    Booking.slot_id == slot.id,
                    Booking.status == BookingStatus.CONFIRMED.value,
                )
            )
            cancelled_students = list(confirmed.scalars().all())
            if cancelled_students and not cancel_bookings:
                await db.rollback()
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=(
                        f"Slot has {len(cancelled_students)} confirmed booking(s); "
                        "set cancel_bookings to cancel them"
                    ),
                )

        try:
            swap = await db.execute(
                update(Slot)
                .where(Slot.id == slot.id, Slot.version == slot.version)
                .values(is_active=is_active, version=Slot.version + 1)
                .execution_options(synchronize_session=False)
            )
            if swap.rowcount != 1:
                await db.rollback()
                continue

            if cancelled_students:
                await db.execute(
                    update(Booking)
                    .where(Booking.slot_id == slot.id, Booking.status == BookingStatus.CONFIRMED.value)
                    .values(
                        status=BookingStatus.CANCELLED.value,
                        cancelled_at=utcnow(),
                        cancelled_by=actor_id,
                        cancel_reason="slot_deactivated",
                    )
                    .execution_options(synchronize_session=False)
                )
                await _bump_ledgers(db, cancelled_students)
            await db.commit()
        except OperationalError:
            await db.rollback()
            logger.info("slot_toggle_retry", slot_id=slot_id, attempt=attempt)
            await asyncio.sleep(settings.BOOKING_RETRY_BASE_DELAY * attempt)
            continue

        await db.refresh(slot)
        if cancelled_students:
            booking_cancellations.labels(result="cancelled").inc(len(cancelled_students))
        logger.info(
            "slot_activation_changed",
            slot_id=slot.id,
            is_active=is_active,
            actor_id=actor_id,
            bookings_cancelled=len(cancelled_students),
        )
        return SlotActiveResult(
            slot=SlotResponse.model_validate(slot),
            bookings_cancelled=len(cancelled_students),
        )

    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Slot changed concurrently. Please retry.",
    )
