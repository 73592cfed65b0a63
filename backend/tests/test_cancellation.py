"""
Tests for cancellation and slot activation.
"""

import asyncio

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from interview_booking.models import Booking, BookingStatus, Slot, StudentLedger
from interview_booking.schemas.booking import RejectionCode
from interview_booking.services.booking_service import book_slot, get_booking
from interview_booking.services.cancellation_service import cancel_booking, set_slot_active


async def ledger_version(db, student_id: int) -> int:
    result = await db.execute(
        select(StudentLedger.version).where(StudentLedger.student_id == student_id)
    )
    return result.scalar_one()


@pytest.mark.asyncio
async def test_cancel_frees_the_seat(db_session, student, other_student, slot):
    slot_id = slot.id
    booked = await book_slot(db_session, student.id, slot_id)
    version_before = await ledger_version(db_session, student.id)

    result = await cancel_booking(db_session, booked.booking_id, actor_id=student.id, reason="sick")

    assert result.success is True
    assert result.message == "Booking cancelled successfully"
    assert result.status == BookingStatus.CANCELLED.value

    booking = await get_booking(db_session, booked.booking_id)
    assert booking.status == BookingStatus.CANCELLED.value
    assert booking.cancelled_at is not None
    assert booking.cancelled_by == student.id
    assert booking.cancel_reason == "sick"
    assert await ledger_version(db_session, student.id) == version_before + 1

    assert (await book_slot(db_session, other_student.id, slot_id)).success


@pytest.mark.asyncio
async def test_cancel_twice_is_a_noop(db_session, student, slot):
    booked = await book_slot(db_session, student.id, slot.id)
    await cancel_booking(db_session, booked.booking_id, actor_id=student.id)

    again = await cancel_booking(db_session, booked.booking_id, actor_id=student.id)

    assert again.success is True
    assert again.message == "Booking is already cancelled"


@pytest.mark.asyncio
async def test_rebook_after_cancel(db_session, student, slot):
    """A cancelled row doesn't block booking the same slot again."""
    slot_id = slot.id
    booked = await book_slot(db_session, student.id, slot_id)
    await cancel_booking(db_session, booked.booking_id, actor_id=student.id)

    again = await book_slot(db_session, student.id, slot_id)

    assert again.success is True
    assert again.booking_id != booked.booking_id


@pytest.mark.asyncio
async def test_cancel_by_someone_else_is_not_found(db_session, student, other_student, slot):
    booked = await book_slot(db_session, student.id, slot.id)

    with pytest.raises(HTTPException) as exc_info:
        await cancel_booking(db_session, booked.booking_id, actor_id=other_student.id)

    assert exc_info.value.status_code == 404
    assert (await get_booking(db_session, booked.booking_id)).status == BookingStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_admin_can_cancel(db_session, student, admin, slot):
    booked = await book_slot(db_session, student.id, slot.id)

    result = await cancel_booking(db_session, booked.booking_id, actor_id=admin.id, is_admin=True)

    assert result.success is True
    assert (await get_booking(db_session, booked.booking_id)).cancelled_by == admin.id


@pytest.mark.asyncio
async def test_cancel_unknown_booking(db_session, student):
    with pytest.raises(HTTPException) as exc_info:
        await cancel_booking(db_session, 9999, actor_id=student.id)

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_concurrent_cancels_take_effect_once(session_factory, student, slot):
    async with session_factory() as session:
        booked = await book_slot(session, student.id, slot.id)

    async def attempt():
        async with session_factory() as session:
            return await cancel_booking(session, booked.booking_id, actor_id=student.id)

    results = await asyncio.gather(attempt(), attempt())

    assert all(r.success for r in results)
    assert sorted(r.message for r in results) == [
        "Booking cancelled successfully",
        "Booking is already cancelled",
    ]


@pytest.mark.asyncio
async def test_deactivate_refuses_booked_slot(db_session, student, slot):
    slot_id = slot.id
    booked = await book_slot(db_session, student.id, slot_id)

    with pytest.raises(HTTPException) as exc_info:
        await set_slot_active(db_session, slot_id, False)

    assert exc_info.value.status_code == 409
    assert (await get_booking(db_session, booked.booking_id)).status == BookingStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_deactivate_cancels_bookings_when_asked(db_session, student, admin, slot):
    slot_id = slot.id
    booked = await book_slot(db_session, student.id, slot_id)

    result = await set_slot_active(db_session, slot_id, False, actor_id=admin.id, cancel_bookings=True)

    assert result.slot.is_active is False
    assert result.bookings_cancelled == 1
    booking = await get_booking(db_session, booked.booking_id)
    assert booking.status == BookingStatus.CANCELLED.value
    assert booking.cancel_reason == "slot_deactivated"


@pytest.mark.asyncio
async def test_deactivated_slot_rejects_then_reactivates(db_session, student, slot):
    slot_id = slot.id
    await set_slot_active(db_session, slot_id, False)

    rejected = await book_slot(db_session, student.id, slot_id)
    assert rejected.error_code == RejectionCode.SLOT_INACTIVE

    result = await set_slot_active(db_session, slot_id, True)
    assert result.slot.is_active is True
    assert result.bookings_cancelled == 0
    assert (await book_slot(db_session, student.id, slot_id)).success

    reloaded = await db_session.execute(
        select(Slot.version).where(Slot.id == slot_id)
    )
    assert reloaded.scalar_one() >= 3


@pytest.mark.asyncio
async def test_set_slot_active_unknown_slot(db_session):
    with pytest.raises(HTTPException) as exc_info:
        await set_slot_active(db_session, 9999, False)

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_cancelled_rows_are_kept(db_session, student, slot):
    booked = await book_slot(db_session, student.id, slot.id)
    await cancel_booking(db_session, booked.booking_id, actor_id=student.id)

    result = await db_session.execute(select(Booking).where(Booking.student_id == student.id))

    assert len(result.scalars().all()) == 1
