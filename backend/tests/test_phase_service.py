"""
Tests for phase resolution, transitions and booking ceilings.
"""

from datetime import datetime, timezone

import pytest
from fastapi import HTTPException

from interview_booking.models import Booking, BookingStatus, Phase, PhaseMode
from interview_booking.services.phase_service import (
    advance_all_phases,
    advance_phase,
    check_booking_limit,
    effective_phase,
    resolve_scheduled_phase,
    resume_automatic_phases,
    set_phase,
)
from interview_booking.services.phase_scheduler import PhaseTicker


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


WINDOWS = (
    utc(2026, 3, 1, 9),
    utc(2026, 3, 5, 18),
    utc(2026, 3, 8, 9),
    utc(2026, 3, 12, 18),
)


@pytest.fixture
def scheduled(make_event):
    async def factory(**overrides):
        return await make_event(
            phase=Phase.NOT_STARTED,
            phase_mode=PhaseMode.DATE_BASED,
            windows=WINDOWS,
            **overrides,
        )

    return factory


@pytest.mark.asyncio
@pytest.mark.parametrize("now,expected", [
    (utc(2026, 2, 28, 12), Phase.NOT_STARTED),
    (utc(2026, 3, 1, 9), Phase.PHASE_1),
    (utc(2026, 3, 5, 17, 59), Phase.PHASE_1),
    (utc(2026, 3, 5, 18), Phase.NOT_STARTED),
    (utc(2026, 3, 8, 9), Phase.PHASE_2),
    (utc(2026, 3, 12, 18), Phase.CLOSED),
    (utc(2026, 6, 1), Phase.CLOSED),
])
async def test_resolve_scheduled_phase(scheduled, now, expected):
    """Window starts are inclusive, ends exclusive."""
    event = await scheduled()

    assert resolve_scheduled_phase(event, now) == expected


@pytest.mark.asyncio
async def test_manual_mode_ignores_the_clock(make_event):
    event = await make_event(phase=Phase.PHASE_2, windows=WINDOWS)

    assert effective_phase(event, utc(2026, 1, 1)) == Phase.PHASE_2


@pytest.mark.asyncio
async def test_advance_phase_is_idempotent(db_session, scheduled):
    event = await scheduled()

    first = await advance_phase(db_session, event.id, now=utc(2026, 3, 2))
    second = await advance_phase(db_session, event.id, now=utc(2026, 3, 2, 12))

    assert first.changed is True
    assert first.previous_phase == Phase.NOT_STARTED
    assert first.current_phase == Phase.PHASE_1
    assert first.phase_version == 2
    assert second.changed is False
    assert second.phase_version == 2


@pytest.mark.asyncio
async def test_advance_phase_leaves_manual_events(db_session, make_event):
    event = await make_event(phase=Phase.PHASE_1, windows=WINDOWS)

    result = await advance_phase(db_session, event.id, now=utc(2026, 3, 10))

    assert result.changed is False
    assert result.current_phase == Phase.PHASE_1


@pytest.mark.asyncio
async def test_advance_all_phases(db_session, scheduled, make_event):
    moving = await scheduled()
    await make_event(phase=Phase.PHASE_1, windows=WINDOWS)

    transitions = await advance_all_phases(db_session, now=utc(2026, 3, 9))

    assert [(t.event_id, t.current_phase) for t in transitions] == [(moving.id, Phase.PHASE_2)]
    assert await advance_all_phases(db_session, now=utc(2026, 3, 9)) == []


@pytest.mark.asyncio
async def test_set_phase_pins_manual_mode(db_session, scheduled):
    event = await scheduled()

    result = await set_phase(db_session, event.id, Phase.CLOSED, actor_id=1)

    assert result.changed is True
    assert result.current_phase == Phase.CLOSED
    assert result.phase_mode == PhaseMode.MANUAL.value

    # The ticker no longer moves it
    again = await advance_phase(db_session, event.id, now=utc(2026, 3, 2))
    assert again.changed is False
    assert again.current_phase == Phase.CLOSED


@pytest.mark.asyncio
async def test_resume_automatic_phases(db_session, scheduled):
    event = await scheduled()
    await set_phase(db_session, event.id, Phase.CLOSED)

    result = await resume_automatic_phases(db_session, event.id, now=utc(2026, 3, 9))

    assert result.phase_mode == PhaseMode.DATE_BASED.value
    assert result.current_phase == Phase.PHASE_2
    assert result.previous_phase == Phase.CLOSED


@pytest.mark.asyncio
async def test_unknown_event(db_session):
    with pytest.raises(HTTPException) as exc_info:
        await advance_phase(db_session, 9999)

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_booking_limit_in_phase_one(db_session, student, event, slot):
    db_session.add(Booking(
        student_id=student.id, slot_id=slot.id, event_id=event.id,
        status=BookingStatus.CONFIRMED.value, booking_phase=1,
    ))
    await db_session.commit()

    limit = await check_booking_limit(db_session, student.id, event.id)

    assert limit.can_book is True
    assert limit.current_count == 1
    assert limit.max_allowed == 3
    assert limit.phase == Phase.PHASE_1
    assert limit.message == "You can book 2 more interview(s). Phase 1: 1/3 booked"


@pytest.mark.asyncio
async def test_booking_limit_closed(db_session, student, make_event):
    event = await make_event(phase=Phase.CLOSED)

    limit = await check_booking_limit(db_session, student.id, event.id)

    assert limit.can_book is False
    assert limit.max_allowed == 0
    assert limit.message == "Bookings are currently closed for this event"


@pytest.mark.asyncio
async def test_booking_limit_deprioritized(db_session, make_user, event):
    student = await make_user("student", is_deprioritized=True)

    limit = await check_booking_limit(db_session, student.id, event.id)

    assert limit.can_book is False
    assert "Phase 2" in limit.message


@pytest.mark.asyncio
async def test_booking_limit_ignores_cancelled(db_session, student, event, make_company, make_slot):
    for i in range(3):
        slot = await make_slot(event, await make_company(), offset_minutes=30 * i)
        db_session.add(Booking(
            student_id=student.id, slot_id=slot.id, event_id=event.id,
            status=BookingStatus.CANCELLED.value, booking_phase=1,
            cancelled_at=utc(2026, 3, 2),
        ))
    await db_session.commit()

    limit = await check_booking_limit(db_session, student.id, event.id)

    assert limit.can_book is True
    assert limit.current_count == 0


@pytest.mark.asyncio
async def test_booking_limit_requires_a_student(db_session, admin, event):
    with pytest.raises(HTTPException) as exc_info:
        await check_booking_limit(db_session, admin.id, event.id)

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_ticker_applies_due_transitions(session_factory, make_event):
    """Default windows put now inside phase 1."""
    event = await make_event(phase=Phase.NOT_STARTED, phase_mode=PhaseMode.DATE_BASED)
    ticker = PhaseTicker(session_factory, interval_seconds=60)

    assert await ticker.tick() == 1
    assert await ticker.tick() == 0

    async with session_factory() as session:
        state = await advance_phase(session, event.id)
    assert state.current_phase == Phase.PHASE_1


@pytest.mark.asyncio
async def test_ticker_start_and_stop(session_factory):
    ticker = PhaseTicker(session_factory, interval_seconds=60)

    ticker.start()
    assert ticker._task is not None
    await ticker.stop()

    assert ticker._task is None
