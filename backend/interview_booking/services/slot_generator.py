"""
Slot generator: partitions an event's time ranges into bookable slots.

A range [start, end) with duration d and buffer b yields slots at
start, start + (d + b), start + 2(d + b), ... while slot_start + d <= end.
A trailing gap shorter than one interview is left unused.

Each participating company gets its own copy of every slot. Work is done one
(company, range) pair per transaction; slots are keyed by
(event, company, start_time) so a second run adds nothing.

generate_*  is add-only: missing slots are created, nothing is touched.
regenerate  reconciles: slots that no longer fit the configuration are
            deleted when nobody ever booked them, deactivated when they only
            hold cancelled bookings, and preserved (reported) when they still
            hold confirmed bookings. Confirmed bookings are never lost.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.core.clock import as_utc, combine_utc
from interview_booking.core.config import get_settings
from interview_booking.core.logging import get_logger
from interview_booking.core.metrics import record_slot_generation
from interview_booking.models.booking import Booking, BookingStatus
from interview_booking.models.company import Company, EventParticipant, Offer
from interview_booking.models.event import Event, TimeRange
from interview_booking.models.slot import Slot
from interview_booking.schemas.slot import GenerationReport

logger = get_logger(__name__)
settings = get_settings()


def compute_intervals(
    start: datetime,
    end: datetime,
    duration_minutes: int,
    buffer_minutes: int,
) -> list[tuple[datetime, datetime]]:
    if end <= start:
        raise ValueError("Range end must be after its start")
    if duration_minutes <= 0:
        raise ValueError("Interview duration must be positive")
    if buffer_minutes < 0:
        raise ValueError("Buffer must not be negative")

    duration = timedelta(minutes=duration_minutes)
    step = duration + timedelta(minutes=buffer_minutes)
    intervals = []
    cursor = start
    while cursor + duration <= end:
        intervals.append((cursor, cursor + duration))
        cursor += step
    return intervals


def _range_settings(event: Event, time_range: TimeRange) -> tuple[int, int, int]:
    """(duration, buffer, capacity) with per-range overrides applied."""
    duration = time_range.interview_duration_minutes or event.interview_duration_minutes
    buffer = time_range.buffer_minutes
    if buffer is None:
        buffer = event.buffer_minutes
    capacity = time_range.slots_per_time or event.slots_per_time
    return duration, buffer, capacity


def plan_range(event: Event, time_range: TimeRange) -> tuple[list[tuple[datetime, datetime]], int]:
    """Intervals and per-slot capacity for a range. Raises 400 on a bad configuration."""
    duration, buffer, capacity = _range_settings(event, time_range)
    start = combine_utc(time_range.day, time_range.start_time)
    end = combine_utc(time_range.day, time_range.end_time)

    if capacity <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Slots per time must be positive",
        )
    try:
        intervals = compute_intervals(start, end, duration, buffer)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Time range {time_range.id}: {exc}",
        )
    if not intervals:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Time range {time_range.id} is shorter than one {duration}-minute interview",
        )
    return intervals, capacity


async def _get_event(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()
    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Event {event_id} not found",
        )
    return event


async def _get_time_range(db: AsyncSession, time_range_id: int) -> TimeRange:
    result = await db.execute(select(TimeRange).where(TimeRange.id == time_range_id))
    time_range = result.scalar_one_or_none()
    if not time_range:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Time range {time_range_id} not found",
        )
    return time_range


async def _active_ranges(db: AsyncSession, event_id: int) -> list[TimeRange]:
    result = await db.execute(
        select(TimeRange)
        .where(TimeRange.event_id == event_id, TimeRange.is_active.is_(True))
        .order_by(TimeRange.day, TimeRange.start_time, TimeRange.id)
    )
    return list(result.scalars().all())


async def _participating_companies(db: AsyncSession, event_id: int) -> list[int]:
    result = await db.execute(
        select(EventParticipant.company_id)
        .where(EventParticipant.event_id == event_id, EventParticipant.is_active.is_(True))
        .order_by(EventParticipant.company_id)
    )
    return list(result.scalars().all())


async def _default_offer(db: AsyncSession, company_id: int, event_id: int) -> Optional[int]:
    """First active offer of the company for this event, or an event-agnostic one."""
    result = await db.execute(
        select(Offer.id)
        .where(
            Offer.company_id == company_id,
            Offer.is_active.is_(True),
            or_(Offer.event_id == event_id, Offer.event_id.is_(None)),
        )
        .order_by(Offer.event_id.is_(None), Offer.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _booking_counts(db: AsyncSession, slot_id: int) -> tuple[int, int]:
    """(all booking rows, confirmed booking rows) for a slot."""
    result = await db.execute(
        select(
            func.count(Booking.id),
            func.count(Booking.id).filter(Booking.status == BookingStatus.CONFIRMED.value),
        ).where(Booking.slot_id == slot_id)
    )
    total, confirmed = result.one()
    return total, confirmed


async def _bump(db: AsyncSession, slot: Slot, **values) -> bool:
    result = await db.execute(
        update(Slot)
        .where(Slot.id == slot.id, Slot.version == slot.version)
        .values(version=Slot.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _reconcile_pair(
    db: AsyncSession,
    event_id: int,
    time_range_id: int,
    company_id: int,
    intervals: list[tuple[datetime, datetime]],
    capacity: int,
    prune: bool,
) -> GenerationReport:
    report = GenerationReport(event_id=event_id)
    offer_id = await _default_offer(db, company_id, event_id)
    starts = [start for start, _ in intervals]

    # Slots of this range, plus any slot another range already put at one of our starts
    result = await db.execute(
        select(Slot)
        .where(
            Slot.event_id == event_id,
            Slot.company_id == company_id,
            or_(Slot.time_range_id == time_range_id, Slot.start_time.in_(starts)),
        )
        .execution_options(populate_existing=True)
    )
    existing = {as_utc(slot.start_time): slot for slot in result.scalars().all()}
    kept = set()

    for start, end in intervals:
        slot = existing.get(start)
        if slot is None:
            db.add(Slot(
                event_id=event_id,
                company_id=company_id,
                time_range_id=time_range_id,
                offer_id=offer_id,
                start_time=start,
                end_time=end,
                capacity=capacity,
                is_active=True,
                version=1,
            ))
            report.slots_created += 1
            continue

        kept.add(slot.id)
        if not prune or (as_utc(slot.end_time) == end and slot.capacity == capacity):
            report.slots_unchanged += 1
            continue

        # Same start, new shape. Only reshape if it still holds everyone booked on it.
        _, confirmed = await _booking_counts(db, slot.id)
        if as_utc(slot.end_time) != end and confirmed:
            report.slots_preserved += 1
        elif confirmed > capacity:
            report.slots_preserved += 1
        elif await _bump(db, slot, end_time=end, capacity=capacity, time_range_id=time_range_id):
            report.slots_updated += 1
        else:
            report.slots_preserved += 1

    if prune:
        for slot in existing.values():
            if slot.id in kept or slot.time_range_id != time_range_id:
                continue
            total, confirmed = await _booking_counts(db, slot.id)
            if confirmed:
                report.slots_preserved += 1
            elif total:
                if not slot.is_active:
                    report.slots_unchanged += 1
                elif await _bump(db, slot, is_active=False):
                    report.slots_deactivated += 1
                else:
                    report.slots_preserved += 1
            else:
                removed = await db.execute(
                    delete(Slot)
                    .where(Slot.id == slot.id, Slot.version == slot.version)
                    .execution_options(synchronize_session=False)
                )
                if removed.rowcount == 1:
                    report.slots_removed += 1
                else:
                    report.slots_preserved += 1

    await db.flush()
    return report


async def _run_pair(
    db: AsyncSession,
    event_id: int,
    time_range_id: int,
    company_id: int,
    intervals: list[tuple[datetime, datetime]],
    capacity: int,
    prune: bool,
) -> GenerationReport:
    for attempt in range(1, settings.BOOKING_MAX_RETRIES + 1):
        try:
            report = await _reconcile_pair(
                db, event_id, time_range_id, company_id, intervals, capacity, prune
            )
            await db.commit()
            return report
        except (IntegrityError, OperationalError) as exc:
            # A concurrent run inserted the same slot, or held the write lock
            await db.rollback()
            logger.info(
                "slot_generation_retry",
                event_id=event_id,
                time_range_id=time_range_id,
                company_id=company_id,
                attempt=attempt,
                error=type(exc).__name__,
            )
            await asyncio.sleep(settings.BOOKING_RETRY_BASE_DELAY * attempt)

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Slot generation is contended. Please try again.",
        headers={"Retry-After": "1"},
    )


async def _run(
    db: AsyncSession,
    event: Event,
    ranges: list[TimeRange],
    companies: list[int],
    prune: bool,
) -> GenerationReport:
    # Validate every range before writing anything. Plans hold plain values
    # because a retried pair rolls back, which expires the loaded rows.
    event_id = event.id
    plans = [(time_range.id, *plan_range(event, time_range)) for time_range in ranges]

    report = GenerationReport(
        event_id=event_id,
        time_ranges_processed=len(ranges),
        companies_processed=len(companies),
    )
    for time_range_id, intervals, capacity in plans:
        for company_id in companies:
            report.absorb(await _run_pair(
                db, event_id, time_range_id, company_id, intervals, capacity, prune
            ))

    record_slot_generation(
        created=report.slots_created,
        removed=report.slots_removed,
        deactivated=report.slots_deactivated,
        preserved=report.slots_preserved,
        updated=report.slots_updated,
    )
    logger.info(
        "slots_regenerated" if prune else "slots_generated",
        **report.model_dump(),
    )
    return report


async def generate_slots(db: AsyncSession, event_id: int) -> GenerationReport:
    """Create the missing slots of every active range for every participating company."""
    event = await _get_event(db, event_id)
    ranges = await _active_ranges(db, event.id)
    companies = await _participating_companies(db, event.id)
    return await _run(db, event, ranges, companies, prune=False)


async def generate_slots_for_range(db: AsyncSession, time_range_id: int) -> GenerationReport:
    """Create the missing slots of one range for every participating company."""
    time_range = await _get_time_range(db, time_range_id)
    event = await _get_event(db, time_range.event_id)
    companies = await _participating_companies(db, event.id)
    return await _run(db, event, [time_range], companies, prune=False)


async def generate_slots_for_session(
    db: AsyncSession,
    company_id: int,
    time_range_id: int,
) -> GenerationReport:
    """Create the missing slots of one range for one company."""
    time_range = await _get_time_range(db, time_range_id)
    event = await _get_event(db, time_range.event_id)

    company = await db.get(Company, company_id)
    if not company:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Company {company_id} not found",
        )
    if company_id not in await _participating_companies(db, event.id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Company {company_id} is not participating in event {event.id}",
        )
    return await _run(db, event, [time_range], [company_id], prune=False)


async def regenerate_slots(
    db: AsyncSession,
    event_id: Optional[int] = None,
    time_range_id: Optional[int] = None,
) -> GenerationReport:
    """
    Bring existing slots in line with the current configuration of an event
    (or of a single range), keeping every confirmed booking.
    """
    if time_range_id is not None:
        time_range = await _get_time_range(db, time_range_id)
        if event_id is not None and time_range.event_id != event_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Time range {time_range_id} does not belong to event {event_id}",
            )
        event = await _get_event(db, time_range.event_id)
        ranges = [time_range]
    elif event_id is not None:
        event = await _get_event(db, event_id)
        ranges = await _active_ranges(db, event.id)
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either event_id or time_range_id is required",
        )

    companies = await _participating_companies(db, event.id)
    return await _run(db, event, ranges, companies, prune=True)
