"""
Event service: events, time ranges, company participation and teardown.
"""

from fastapi import HTTPException, status
from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.core.clock import combine_utc
from interview_booking.core.config import get_settings
from interview_booking.core.logging import get_logger
from interview_booking.models.audit import BookingAttempt
from interview_booking.models.booking import Booking, BookingStatus
from interview_booking.models.company import Company, EventParticipant, Offer
from interview_booking.models.event import Event, Phase, TimeRange
from interview_booking.models.slot import Slot
from interview_booking.schemas.event import EventCreate, TeardownReport, TimeRangeCreate
from interview_booking.services.slot_generator import generate_slots_for_range

logger = get_logger(__name__)
settings = get_settings()


async def create_event(db: AsyncSession, event_data: EventCreate) -> Event:
    """Create an event; unset slot parameters fall back to the configured defaults."""
    event = Event(
        name=event_data.name,
        date=event_data.date,
        interview_duration_minutes=(
            event_data.interview_duration_minutes or settings.DEFAULT_INTERVIEW_DURATION_MINUTES
        ),
        buffer_minutes=(
            event_data.buffer_minutes
            if event_data.buffer_minutes is not None
            else settings.DEFAULT_BUFFER_MINUTES
        ),
        slots_per_time=event_data.slots_per_time or settings.DEFAULT_SLOTS_PER_TIME,
        phase_mode=event_data.phase_mode.value,
        current_phase=int(Phase.NOT_STARTED),
        phase_version=1,
        phase1_start=event_data.phase1_start,
        phase1_end=event_data.phase1_end,
        phase2_start=event_data.phase2_start,
        phase2_end=event_data.phase2_end,
        phase1_max_bookings=event_data.phase1_max_bookings,
        phase2_max_bookings=event_data.phase2_max_bookings,
        is_active=True,
    )
    db.add(event)
    await db.flush()
    await db.refresh(event)

    logger.info("event_created", event_id=event.id, name=event.name, phase_mode=event.phase_mode)
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Event {event_id} not found",
        )
    return event


async def list_events(db: AsyncSession, active_only: bool = True) -> list[Event]:
    query = select(Event)
    if active_only:
        query = query.where(Event.is_active.is_(True))
    result = await db.execute(query.order_by(Event.date.asc(), Event.id.asc()))
    return list(result.scalars().all())


async def add_time_range(db: AsyncSession, event_id: int, data: TimeRangeCreate) -> TimeRange:
    event = await get_event(db, event_id)

    if data.end_time <= data.start_time:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Time range end must be after its start",
        )
    duration = data.interview_duration_minutes or event.interview_duration_minutes
    span = combine_utc(data.day, data.end_time) - combine_utc(data.day, data.start_time)
    if span.total_seconds() < duration * 60:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Time range is shorter than one {duration}-minute interview",
        )

    time_range = TimeRange(
        event_id=event.id,
        name=data.name,
        day=data.day,
        start_time=data.start_time,
        end_time=data.end_time,
        interview_duration_minutes=data.interview_duration_minutes,
        buffer_minutes=data.buffer_minutes,
        slots_per_time=data.slots_per_time,
        is_active=True,
    )
    db.add(time_range)
    # Committed first: slot generation commits per company and may roll back
    await db.commit()
    event_id, time_range_id = event.id, time_range.id

    report = await generate_slots_for_range(db, time_range_id)
    await db.refresh(time_range)

    logger.info(
        "time_range_added",
        event_id=event_id,
        time_range_id=time_range_id,
        day=str(time_range.day),
        slots_created=report.slots_created,
    )
    return time_range


async def invite_company(db: AsyncSession, event_id: int, company_id: int) -> EventParticipant:
    """Make a company an active participant of an event. Re-inviting reactivates."""
    event = await get_event(db, event_id)
    company = await db.get(Company, company_id)
    if not company:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Company {company_id} not found",
        )

    result = await db.execute(
        select(EventParticipant).where(
            EventParticipant.event_id == event.id,
            EventParticipant.company_id == company_id,
        )
    )
    participant = result.scalar_one_or_none()
    if participant:
        participant.is_active = True
    else:
        participant = EventParticipant(event_id=event.id, company_id=company_id, is_active=True)
        db.add(participant)
    await db.flush()
    await db.refresh(participant)

    logger.info("company_invited", event_id=event.id, company_id=company_id)
    return participant


async def delete_event(db: AsyncSession, event_id: int) -> TeardownReport:
    """
    Remove an event and everything hanging off it, all or nothing.
    Attempt rows are kept for diagnostics but no longer point at deleted slots.
    """
    event = await get_event(db, event_id)

    try:
        confirmed = (await db.execute(
            select(func.count(Booking.id)).where(
                Booking.event_id == event.id,
                Booking.status == BookingStatus.CONFIRMED.value,
            )
        )).scalar_one()

        slot_ids = select(Slot.id).where(Slot.event_id == event.id).scalar_subquery()

        bookings = await db.execute(
            delete(Booking).where(Booking.event_id == event.id)
            .execution_options(synchronize_session=False)
        )
        attempts = await db.execute(
            update(BookingAttempt).where(BookingAttempt.slot_id.in_(slot_ids))
            .values(slot_id=None)
            .execution_options(synchronize_session=False)
        )
        slots = await db.execute(
            delete(Slot).where(Slot.event_id == event.id)
            .execution_options(synchronize_session=False)
        )
        ranges = await db.execute(
            delete(TimeRange).where(TimeRange.event_id == event.id)
            .execution_options(synchronize_session=False)
        )
        participants = await db.execute(
            delete(EventParticipant).where(EventParticipant.event_id == event.id)
            .execution_options(synchronize_session=False)
        )
        offers = await db.execute(
            update(Offer).where(Offer.event_id == event.id)
            .values(event_id=None)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            delete(Event).where(Event.id == event.id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        logger.error("event_delete_failed", event_id=event_id)
        raise

    report = TeardownReport(
        event_id=event_id,
        bookings_cancelled=confirmed,
        bookings_deleted=bookings.rowcount,
        attempts_detached=attempts.rowcount,
        slots_deleted=slots.rowcount,
        time_ranges_deleted=ranges.rowcount,
        participants_deleted=participants.rowcount,
        offers_detached=offers.rowcount,
        event_deleted=True,
    )
    logger.info("event_deleted", **report.model_dump())
    return report
