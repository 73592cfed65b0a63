"""
Slot endpoints: availability, activation and per-range generation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.db.session import get_db
from interview_booking.schemas.slot import GenerationReport, SlotActiveResult, SlotActiveUpdate, SlotAvailability
from interview_booking.services.cancellation_service import set_slot_active
from interview_booking.services.slot_generator import generate_slots_for_session, regenerate_slots
from interview_booking.services.slot_service import get_available_slots
from interview_booking.core.security import CurrentUser, require_admin

router = APIRouter(tags=["Slots"])


@router.get("/slots/available", response_model=list[SlotAvailability])
async def available_slots_endpoint(
    company_id: Optional[int] = Query(None),
    offer_id: Optional[int] = Query(None),
    event_id: Optional[int] = Query(None),
    include_full: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """
    Upcoming active slots of a company, with seats counted live.
    Pass either company_id or offer_id.
    """
    return await get_available_slots(
        db,
        company_id=company_id,
        offer_id=offer_id,
        event_id=event_id,
        include_full=include_full,
    )


@router.patch("/slots/{slot_id}/active", response_model=SlotActiveResult)
async def set_slot_active_endpoint(
    slot_id: int,
    data: SlotActiveUpdate,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Deactivating a booked slot needs cancel_bookings=true."""
    return await set_slot_active(
        db,
        slot_id,
        data.is_active,
        actor_id=admin.id,
        cancel_bookings=data.cancel_bookings,
    )


@router.post("/time-ranges/{time_range_id}/slots/generate", response_model=GenerationReport)
async def generate_session_slots_endpoint(
    time_range_id: int,
    company_id: int = Query(...),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await generate_slots_for_session(db, company_id, time_range_id)


@router.post("/time-ranges/{time_range_id}/slots/regenerate", response_model=GenerationReport)
async def regenerate_session_slots_endpoint(
    time_range_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await regenerate_slots(db, time_range_id=time_range_id)
