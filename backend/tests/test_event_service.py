"""
Tests for events, time ranges, participation and event teardown.
"""

from datetime import date, datetime, time, timedelta, timezone

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy import func, select

from interview_booking.models import (
    Booking, BookingAttempt, Event, EventParticipant, Offer, Slot, StudentLedger, TimeRange,
)
from interview_booking.schemas.event import EventCreate, TimeRangeCreate
from interview_booking.services.booking_service import book_slot
from interview_booking.services.cancellation_service import cancel_booking
from interview_booking.services.event_service import (
    add_time_range, create_event, delete_event, invite_company, list_events,
)
from interview_booking.services.slot_generator import generate_slots


def event_payload(**overrides) -> dict:
    start = datetime(2026, 3, 1, 9, tzinfo=timezone.utc)
    values = dict(
        name="Spring Forum",
        date=date(2026, 3, 20),
        phase1_start=start,
        phase1_end=start + timedelta(days=4),
        phase2_start=start + timedelta(days=7),
        phase2_end=start + timedelta(days=11),
    )
    values.update(overrides)
    return values


async def count(db, model, *criteria) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(*criteria))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_create_event_uses_defaults(db_session):
    event = await create_event(db_session, EventCreate(**event_payload()))
    await db_session.commit()

    assert event.id is not None
    assert event.interview_duration_minutes == 15
    assert event.buffer_minutes == 5
    assert event.slots_per_time == 1
    assert event.current_phase == 0
    assert event.phase_version == 1
    assert event.phase1_max_bookings == 3
    assert event.phase2_max_bookings == 6


@pytest.mark.asyncio
async def test_create_event_keeps_zero_buffer(db_session):
    event = await create_event(db_session, EventCreate(**event_payload(buffer_minutes=0)))

    assert event.buffer_minutes == 0


def test_event_windows_must_be_ordered():
    payload = event_payload()
    payload["phase2_start"] = payload["phase1_start"]

    with pytest.raises(ValidationError):
        EventCreate(**payload)


@pytest.mark.asyncio
async def test_list_events_hides_inactive(db_session, make_event):
    visible = await make_event()
    await make_event(is_active=False)

    events = await list_events(db_session)

    assert [e.id for e in events] == [visible.id]
    assert len(await list_events(db_session, active_only=False)) == 2


@pytest.mark.asyncio
async def test_add_time_range(db_session, event):
    time_range = await add_time_range(db_session, event.id, TimeRangeCreate(
        name="Afternoon", day=event.date, start_time=time(13, 0), end_time=time(15, 0),
        slots_per_time=2,
    ))

    assert time_range.event_id == event.id
    assert time_range.slots_per_time == 2
    assert time_range.interview_duration_minutes is None


@pytest.mark.asyncio
async def test_add_time_range_generates_slots_for_invited_companies(db_session, event, company, invite):
    """15-minute interviews with 5-minute buffers: 9:00, 9:20 and 9:40."""
    await invite(event, company)

    time_range = await add_time_range(db_session, event.id, TimeRangeCreate(
        day=event.date, start_time=time(9, 0), end_time=time(10, 0),
    ))

    assert await count(db_session, Slot, Slot.time_range_id == time_range.id) == 3
    assert await count(db_session, Slot, Slot.company_id == company.id) == 3


@pytest.mark.asyncio
async def test_add_time_range_without_participants_creates_no_slots(db_session, event):
    time_range = await add_time_range(db_session, event.id, TimeRangeCreate(
        day=event.date, start_time=time(9, 0), end_time=time(10, 0),
    ))

    assert time_range.id is not None
    assert await count(db_session, Slot) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("start,end", [
    (time(10, 0), time(9, 0)),
    (time(10, 0), time(10, 0)),
    (time(10, 0), time(10, 10)),
])
async def test_add_time_range_rejects_unusable_windows(db_session, event, start, end):
    with pytest.raises(HTTPException) as exc_info:
        await add_time_range(db_session, event.id, TimeRangeCreate(
            day=event.date, start_time=start, end_time=end,
        ))

    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_invite_company_twice_reactivates(db_session, event, company):
    first = await invite_company(db_session, event.id, company.id)
    first.is_active = False
    await db_session.commit()

    again = await invite_company(db_session, event.id, company.id)

    assert again.id == first.id
    assert again.is_active is True
    assert await count(db_session, EventParticipant, EventParticipant.event_id == event.id) == 1


@pytest.mark.asyncio
async def test_invite_unknown_company(db_session, event):
    with pytest.raises(HTTPException) as exc_info:
        await invite_company(db_session, event.id, 9999)

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_delete_event_removes_everything(
    db_session, event, company, invite, make_time_range, student, other_student
):
    await invite(event, company)
    await make_time_range(event, time(9, 0), time(10, 0))
    await generate_slots(db_session, event.id)
    slot_ids = (await db_session.execute(
        select(Slot.id).where(Slot.event_id == event.id).order_by(Slot.start_time)
    )).scalars().all()

    kept = await book_slot(db_session, student.id, slot_ids[0])
    dropped = await book_slot(db_session, other_student.id, slot_ids[1])
    await cancel_booking(db_session, dropped.booking_id, actor_id=other_student.id)
    offer = Offer(company_id=company.id, event_id=event.id, title="Event offer")
    db_session.add(offer)
    await db_session.commit()
    event_id, offer_id = event.id, offer.id
    assert kept.success

    report = await delete_event(db_session, event_id)

    assert report.event_deleted is True
    assert report.bookings_cancelled == 1
    assert report.bookings_deleted == 2
    assert report.attempts_detached == 2
    assert report.slots_deleted == 3
    assert report.time_ranges_deleted == 1
    assert report.participants_deleted == 1
    assert report.offers_detached == 1

    for model in (Booking, Slot, TimeRange, EventParticipant):
        assert await count(db_session, model, model.event_id == event_id) == 0
    assert await count(db_session, Event, Event.id == event_id) == 0
    # Ledgers are per student and outlive any one event
    assert await count(db_session, StudentLedger) == 2
    assert await count(db_session, BookingAttempt) == 2
    assert await count(db_session, BookingAttempt, BookingAttempt.slot_id.is_not(None)) == 0
    assert await count(db_session, Offer, Offer.id == offer_id, Offer.event_id.is_(None)) == 1


@pytest.mark.asyncio
async def test_delete_unknown_event(db_session):
    with pytest.raises(HTTPException) as exc_info:
        await delete_event(db_session, 9999)

    assert exc_info.value.status_code == 404
