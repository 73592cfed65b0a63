"""
Pydantic schemas for booking-related request/response validation.
"""

import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class RejectionCode(str, enum.Enum):
    PHASE_CLOSED = "PHASE_CLOSED"
    DEPRIORITIZED_PHASE1 = "DEPRIORITIZED_PHASE1"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    SLOT_FULL = "SLOT_FULL"
    SLOT_INACTIVE = "SLOT_INACTIVE"
    ALREADY_BOOKED = "ALREADY_BOOKED"
    COMPANY_ALREADY_BOOKED = "COMPANY_ALREADY_BOOKED"
    TIME_CONFLICT = "TIME_CONFLICT"
    OFFER_INACTIVE = "OFFER_INACTIVE"
    CONTENTION = "CONTENTION"


class BookingCreate(BaseModel):
    slot_id: int
    offer_id: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=1000)


class BookingResult(BaseModel):
    success: bool
    booking_id: Optional[int] = None
    message: str
    error_code: Optional[RejectionCode] = None
    phase: Optional[int] = None


class BookingResponse(BaseModel):
    id: int
    student_id: int
    slot_id: int
    event_id: int
    offer_id: Optional[int]
    status: str
    booking_phase: int
    created_at: datetime
    cancelled_at: Optional[datetime]
    cancel_reason: Optional[str]

    model_config = {"from_attributes": True}


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class CancelResult(BaseModel):
    success: bool
    message: str
    booking_id: int
    status: str


class BookingAttemptResponse(BaseModel):
    id: int
    student_id: Optional[int]
    slot_id: Optional[int]
    event_id: Optional[int]
    success: bool
    error_code: Optional[str]
    error_message: Optional[str]
    booking_phase: Optional[int]
    student_booking_count: Optional[int]
    slot_available_capacity: Optional[int]
    retries: int
    response_time_ms: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}
