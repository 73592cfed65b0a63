"""
Event endpoints: setup, slot generation, phases and teardown.
Everything that changes an event is admin-only.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.db.session import get_db
from interview_booking.schemas.event import (
    EventCreate, EventResponse, TimeRangeCreate, TimeRangeResponse,
    ParticipantCreate, ParticipantResponse, PhaseUpdate, PhaseTransitionResponse,
    BookingLimitResponse, TeardownReport,
)
from interview_booking.schemas.slot import GenerationReport
from interview_booking.services.event_service import (
    create_event, get_event, list_events, add_time_range, invite_company, delete_event,
)
from interview_booking.services.phase_service import (
    advance_phase, check_booking_limit, resume_automatic_phases, set_phase,
)
from interview_booking.services.slot_generator import generate_slots, regenerate_slots
from interview_booking.core.security import CurrentUser, get_current_user, require_admin
from interview_booking.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create an event with its phase windows and booking ceilings."""
    return await create_event(db, event_data)


@router.get("/", response_model=list[EventResponse])
async def list_events_endpoint(
    active_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    return await list_events(db, active_only)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await get_event(db, event_id)


@router.delete("/{event_id}", response_model=TeardownReport)
async def delete_event_endpoint(
    event_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete the event with all its slots and bookings. Reports what was removed."""
    return await delete_event(db, event_id)


@router.post(
    "/{event_id}/time-ranges",
    response_model=TimeRangeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_time_range_endpoint(
    event_id: int,
    data: TimeRangeCreate,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await add_time_range(db, event_id, data)


@router.post(
    "/{event_id}/participants",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
)
async def invite_company_endpoint(
    event_id: int,
    data: ParticipantCreate,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await invite_company(db, event_id, data.company_id)


@router.post("/{event_id}/slots/generate", response_model=GenerationReport)
async def generate_slots_endpoint(
    event_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create missing slots for every active range and participating company."""
    return await generate_slots(db, event_id)


@router.post("/{event_id}/slots/regenerate", response_model=GenerationReport)
async def regenerate_slots_endpoint(
    event_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Reconcile slots with the current configuration, keeping confirmed bookings."""
    return await regenerate_slots(db, event_id=event_id)


@router.get("/{event_id}/booking-limit", response_model=BookingLimitResponse)
async def booking_limit_endpoint(
    event_id: int,
    student_id: Optional[int] = Query(None, description="Admins may check any student"),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Advisory: what the caller may book right now. Booking re-checks on write."""
    if student_id is not None and student_id != user.id and not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return await check_booking_limit(db, student_id if student_id is not None else user.id, event_id)


@router.post("/{event_id}/phase/advance", response_model=PhaseTransitionResponse)
async def advance_phase_endpoint(
    event_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Apply the scheduled phase now instead of waiting for the ticker."""
    return await advance_phase(db, event_id)


@router.put("/{event_id}/phase", response_model=PhaseTransitionResponse)
async def set_phase_endpoint(
    event_id: int,
    data: PhaseUpdate,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Manual override. The event stays in manual mode until resumed."""
    return await set_phase(db, event_id, data.phase, actor_id=admin.id)


@router.post("/{event_id}/phase/resume", response_model=PhaseTransitionResponse)
async def resume_phases_endpoint(
    event_id: int,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await resume_automatic_phases(db, event_id)
