"""
Slot read side: availability listings with live capacity.
"""

from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.core.clock import utcnow
from interview_booking.models.booking import Booking, BookingStatus
from interview_booking.models.company import Offer
from interview_booking.models.slot import Slot
from interview_booking.schemas.slot import SlotAvailability, SlotResponse


async def get_available_slots(
    db: AsyncSession,
    company_id: Optional[int] = None,
    offer_id: Optional[int] = None,
    event_id: Optional[int] = None,
    include_full: bool = False,
    now: Optional[datetime] = None,
) -> list[SlotAvailability]:
    """
    Active future slots of a company (directly or through one of its offers),
    ordered by start time. Free seats are counted from confirmed bookings at
    query time; a listed seat is still not reserved until book() commits.
    """
    if offer_id is not None:
        offer = await db.get(Offer, offer_id)
        if not offer:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Offer {offer_id} not found",
            )
        if company_id is not None and company_id != offer.company_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Offer {offer_id} does not belong to company {company_id}",
            )
        company_id = offer.company_id
        if event_id is None:
            event_id = offer.event_id

    if company_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either company_id or offer_id is required",
        )

    confirmed = (
        select(Booking.slot_id, func.count(Booking.id).label("confirmed"))
        .where(Booking.status == BookingStatus.CONFIRMED.value)
        .group_by(Booking.slot_id)
        .subquery()
    )
    query = (
        select(Slot, func.coalesce(confirmed.c.confirmed, 0))
        .outerjoin(confirmed, confirmed.c.slot_id == Slot.id)
        .where(
            Slot.company_id == company_id,
            Slot.is_active.is_(True),
            Slot.start_time > (now or utcnow()),
        )
        .order_by(Slot.start_time, Slot.id)
    )
    if event_id is not None:
        query = query.where(Slot.event_id == event_id)

    result = await db.execute(query)
    slots = []
    for slot, confirmed_count in result.all():
        available = max(slot.capacity - confirmed_count, 0)
        if not available and not include_full:
            continue
        slots.append(SlotAvailability(
            **SlotResponse.model_validate(slot).model_dump(),
            confirmed_count=confirmed_count,
            available=available,
        ))
    return slots
