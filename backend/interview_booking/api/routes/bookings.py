"""
Booking endpoints with concurrency-safe slot reservation.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.api.middleware import client_ip
from interview_booking.db.session import get_db
from interview_booking.schemas.booking import (
    BookingAttemptResponse, BookingCancelRequest, BookingCreate, BookingResponse, BookingResult, CancelResult,
)
from interview_booking.services.audit_service import AttemptContext, list_attempts
from interview_booking.services.booking_service import book_slot, get_booking, get_student_bookings
from interview_booking.services.cancellation_service import cancel_booking
from interview_booking.core.security import CurrentUser, get_current_user, require_admin
from interview_booking.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post(
    "/",
    response_model=BookingResult,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": BookingResult, "description": "Booking rejected by a business rule"}},
)
async def create_booking(
    booking_data: BookingCreate,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Book an interview slot for the authenticated student.

    Capacity, the phase ceiling and time conflicts are checked and written in
    one transaction with optimistic retry, so concurrent requests can neither
    overbook a slot nor double-book a student. A rejection comes back as 409
    with the same body shape and an error_code.
    """
    if user.role != "student":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only students can book interviews",
        )

    result = await book_slot(
        db,
        user.id,
        booking_data.slot_id,
        offer_id=booking_data.offer_id,
        notes=booking_data.notes,
        context=AttemptContext(
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        ),
    )
    if not result.success:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=result.model_dump(mode="json"))
    return result


@router.get("/", response_model=list[BookingResponse])
async def list_user_bookings(
    event_id: Optional[int] = Query(None),
    include_cancelled: bool = Query(True),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookings of the authenticated student."""
    return await get_student_bookings(db, user.id, event_id, include_cancelled)


@router.get("/attempts", response_model=list[BookingAttemptResponse])
async def list_attempts_endpoint(
    student_id: Optional[int] = Query(None),
    slot_id: Optional[int] = Query(None),
    event_id: Optional[int] = Query(None),
    success: Optional[bool] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Booking attempt log, newest first."""
    return await list_attempts(
        db, student_id=student_id, slot_id=slot_id, event_id=event_id, success=success, limit=limit
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await get_booking(db, booking_id)
    if booking.student_id != user.id and not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )
    return booking


@router.delete("/{booking_id}", response_model=CancelResult)
async def cancel_booking_endpoint(
    booking_id: int,
    data: Optional[BookingCancelRequest] = Body(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a booking and free its seat. Cancelling twice is a no-op."""
    return await cancel_booking(
        db,
        booking_id,
        actor_id=user.id,
        is_admin=user.is_admin,
        reason=data.reason if data else None,
    )
