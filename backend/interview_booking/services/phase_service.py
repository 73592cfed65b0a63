"""
Phase controller: admission phases and per-student booking ceilings.

PHASE MODEL
===========

  0 NOT_STARTED  no booking window open (before phase 1, or between windows)
  1 PHASE_1      students book up to phase1_max_bookings; deprioritized
                 students are locked out entirely
  2 PHASE_2      everyone books up to phase2_max_bookings, counted against
                 *all* confirmed bookings (the ceiling is cumulative)
  3 CLOSED       terminal; reached at phase2_end or by admin override

Phase resolution is lazy: `effective_phase()` derives the phase from the event
row and the clock, so a limit check is correct even if the ticker hasn't run
yet. The ticker (`advance_all_phases`) only persists that derived value into
`current_phase` so dashboards and filters can read it.

Persisted transitions are compare-and-swap on `phase_version`. Two tickers
evaluating the same window race on the version; one wins, the other sees
rowcount 0 and reports no change.
"""

from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.core.clock import as_utc, utcnow
from interview_booking.core.logging import get_logger
from interview_booking.core.metrics import record_phase_transition
from interview_booking.models.booking import Booking, BookingStatus
from interview_booking.models.event import Event, Phase, PhaseMode
from interview_booking.models.user import User
from interview_booking.schemas.event import BookingLimitResponse, PhaseTransitionResponse

logger = get_logger(__name__)


def resolve_scheduled_phase(event: Event, now: datetime) -> Phase:
    """Phase dictated by the event's windows at `now`."""
    now = as_utc(now)
    if now < as_utc(event.phase1_start):
        return Phase.NOT_STARTED
    if now < as_utc(event.phase1_end):
        return Phase.PHASE_1
    if now < as_utc(event.phase2_start):
        return Phase.NOT_STARTED
    if now < as_utc(event.phase2_end):
        return Phase.PHASE_2
    return Phase.CLOSED


def effective_phase(event: Event, now: Optional[datetime] = None) -> Phase:
    if event.phase_mode == PhaseMode.MANUAL.value:
        return Phase(event.current_phase)
    return resolve_scheduled_phase(event, now or utcnow())


def phase_ceiling(event: Event, phase: Phase) -> int:
    if phase == Phase.PHASE_1:
        return event.phase1_max_bookings
    if phase == Phase.PHASE_2:
        return event.phase2_max_bookings
    return 0


async def count_confirmed_bookings(db: AsyncSession, student_id: int, event_id: int) -> int:
    result = await db.execute(
        select(func.count(Booking.id)).where(
            Booking.student_id == student_id,
            Booking.event_id == event_id,
            Booking.status == BookingStatus.CONFIRMED.value,
        )
    )
    return result.scalar_one()


async def evaluate_booking_limit(
    db: AsyncSession,
    student: User,
    event: Event,
    now: Optional[datetime] = None,
) -> BookingLimitResponse:
    """
    Limit check against already-loaded rows.
    The booking engine calls this inside its own transaction.
    """
    phase = effective_phase(event, now)
    current_count = await count_confirmed_bookings(db, student.id, event.id)

    if phase in (Phase.NOT_STARTED, Phase.CLOSED):
        return BookingLimitResponse(
            can_book=False,
            current_count=current_count,
            max_allowed=0,
            phase=int(phase),
            message="Bookings are currently closed for this event",
        )

    if phase == Phase.PHASE_1 and student.is_deprioritized:
        return BookingLimitResponse(
            can_book=False,
            current_count=current_count,
            max_allowed=0,
            phase=int(phase),
            message=(
                "You cannot book during Phase 1 because you indicated you already "
                "have an internship. You can book once Phase 2 opens."
            ),
        )

    max_allowed = phase_ceiling(event, phase)
    if current_count >= max_allowed:
        message = f"You have reached the maximum of {max_allowed} interviews for Phase {int(phase)}"
    else:
        message = (
            f"You can book {max_allowed - current_count} more interview(s). "
            f"Phase {int(phase)}: {current_count}/{max_allowed} booked"
        )

    return BookingLimitResponse(
        can_book=current_count < max_allowed,
        current_count=current_count,
        max_allowed=max_allowed,
        phase=int(phase),
        message=message,
    )


async def _get_event(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Event {event_id} not found",
        )
    return event


async def _get_student(db: AsyncSession, student_id: int) -> User:
    result = await db.execute(select(User).where(User.id == student_id))
    student = result.scalar_one_or_none()
    if not student or not student.is_student:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Student {student_id} not found",
        )
    return student


async def check_booking_limit(
    db: AsyncSession,
    student_id: int,
    event_id: int,
    now: Optional[datetime] = None,
) -> BookingLimitResponse:
    """Advisory limit check for UI state. `book()` re-validates on write."""
    student = await _get_student(db, student_id)
    event = await _get_event(db, event_id)
    return await evaluate_booking_limit(db, student, event, now)


async def _swap_phase(
    db: AsyncSession,
    event: Event,
    new_phase: Phase,
    new_mode: PhaseMode,
) -> bool:
    """Persist phase + mode if nobody else moved the phase record first."""
    result = await db.execute(
        update(Event)
        .where(Event.id == event.id, Event.phase_version == event.phase_version)
        .values(
            current_phase=int(new_phase),
            phase_mode=new_mode.value,
            phase_version=Event.phase_version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _transition(event: Event, previous: int, changed: bool) -> PhaseTransitionResponse:
    return PhaseTransitionResponse(
        event_id=event.id,
        previous_phase=previous,
        current_phase=event.current_phase,
        phase_mode=event.phase_mode,
        phase_version=event.phase_version,
        changed=changed,
    )


async def advance_phase(
    db: AsyncSession,
    event_id: int,
    now: Optional[datetime] = None,
) -> PhaseTransitionResponse:
    """
    Time-driven transition for one event. Idempotent: evaluating twice inside
    the same window changes nothing the second time. Manual events are left
    untouched.
    """
    event = await _get_event(db, event_id)
    previous = event.current_phase

    if event.phase_mode != PhaseMode.DATE_BASED.value or not event.is_active:
        return _transition(event, previous, changed=False)

    target = resolve_scheduled_phase(event, now or utcnow())
    if int(target) == event.current_phase:
        return _transition(event, previous, changed=False)

    swapped = await _swap_phase(db, event, target, PhaseMode.DATE_BASED)
    await db.commit()
    await db.refresh(event)

    if swapped:
        record_phase_transition("auto", int(target))
        logger.info(
            "phase_transitioned",
            event_id=event.id,
            source="auto",
            previous_phase=previous,
            current_phase=event.current_phase,
            phase_version=event.phase_version,
        )
    else:
        logger.info("phase_transition_lost_race", event_id=event.id, target=int(target))

    return _transition(event, previous, changed=swapped)


async def advance_all_phases(db: AsyncSession, now: Optional[datetime] = None) -> list[PhaseTransitionResponse]:
    """Run the automatic transition for every active date-based event."""
    result = await db.execute(
        select(Event.id).where(
            Event.is_active.is_(True),
            Event.phase_mode == PhaseMode.DATE_BASED.value,
        )
    )
    transitions = []
    for event_id in result.scalars().all():
        transition = await advance_phase(db, event_id, now)
        if transition.changed:
            transitions.append(transition)
    return transitions


async def set_phase(
    db: AsyncSession,
    event_id: int,
    phase: Phase,
    actor_id: Optional[int] = None,
) -> PhaseTransitionResponse:
    """
    Manual override. Pins the event to `manual` mode so the ticker can't
    revert it; `resume_automatic_phases` hands control back.
    """
    event = await _get_event(db, event_id)
    previous = event.current_phase

    if not await _swap_phase(db, event, Phase(phase), PhaseMode.MANUAL):
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Event phase changed concurrently. Please retry.",
        )
    await db.commit()
    await db.refresh(event)

    record_phase_transition("manual", int(phase))
    logger.info(
        "phase_overridden",
        event_id=event.id,
        actor_id=actor_id,
        previous_phase=previous,
        current_phase=event.current_phase,
        phase_version=event.phase_version,
    )
    return _transition(event, previous, changed=previous != event.current_phase)


async def resume_automatic_phases(
    db: AsyncSession,
    event_id: int,
    now: Optional[datetime] = None,
) -> PhaseTransitionResponse:
    """Switch back to date-based mode and apply the scheduled phase right away."""
    event = await _get_event(db, event_id)
    previous = event.current_phase
    target = resolve_scheduled_phase(event, now or utcnow())

    if not await _swap_phase(db, event, target, PhaseMode.DATE_BASED):
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Event phase changed concurrently. Please retry.",
        )
    await db.commit()
    await db.refresh(event)

    record_phase_transition("auto", int(target))
    logger.info(
        "phase_automation_resumed",
        event_id=event.id,
        previous_phase=previous,
        current_phase=event.current_phase,
    )
    return _transition(event, previous, changed=previous != event.current_phase)
