"""
Pydantic schemas for events, time ranges, phases and teardown.
"""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from interview_booking.models.event import Phase, PhaseMode


class EventCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    date: date
    interview_duration_minutes: Optional[int] = Field(None, gt=0, le=480)
    buffer_minutes: Optional[int] = Field(None, ge=0, le=240)
    slots_per_time: Optional[int] = Field(None, gt=0, le=100)
    phase_mode: PhaseMode = PhaseMode.DATE_BASED
    phase1_start: datetime
    phase1_end: datetime
    phase2_start: datetime
    phase2_end: datetime
    phase1_max_bookings: int = Field(3, ge=0)
    phase2_max_bookings: int = Field(6, ge=0)

    @model_validator(mode="after")
    def check_phase_configuration(self) -> "EventCreate":
        if not (self.phase1_start < self.phase1_end <= self.phase2_start < self.phase2_end):
            raise ValueError("Phase 1 window must be non-empty and precede a non-empty phase 2 window")
        if self.phase2_max_bookings < self.phase1_max_bookings:
            raise ValueError("Phase 2 ceiling must be at least the phase 1 ceiling")
        return self


class EventResponse(BaseModel):
    id: int
    name: str
    date: date
    interview_duration_minutes: int
    buffer_minutes: int
    slots_per_time: int
    phase_mode: str
    current_phase: int
    phase_version: int
    phase1_start: datetime
    phase1_end: datetime
    phase2_start: datetime
    phase2_end: datetime
    phase1_max_bookings: int
    phase2_max_bookings: int
    is_active: bool

    model_config = {"from_attributes": True}


class TimeRangeCreate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    day: date
    start_time: time
    end_time: time
    interview_duration_minutes: Optional[int] = Field(None, gt=0, le=480)
    buffer_minutes: Optional[int] = Field(None, ge=0, le=240)
    slots_per_time: Optional[int] = Field(None, gt=0, le=100)


class TimeRangeResponse(BaseModel):
    id: int
    event_id: int
    name: Optional[str]
    day: date
    start_time: time
    end_time: time
    interview_duration_minutes: Optional[int]
    buffer_minutes: Optional[int]
    slots_per_time: Optional[int]
    is_active: bool

    model_config = {"from_attributes": True}


class ParticipantCreate(BaseModel):
    company_id: int


class ParticipantResponse(BaseModel):
    id: int
    event_id: int
    company_id: int
    is_active: bool

    model_config = {"from_attributes": True}


class PhaseUpdate(BaseModel):
    phase: Phase


class PhaseTransitionResponse(BaseModel):
    event_id: int
    previous_phase: int
    current_phase: int
    phase_mode: str
    phase_version: int
    changed: bool


class BookingLimitResponse(BaseModel):
    can_book: bool
    current_count: int
    max_allowed: int
    phase: int
    message: str


class TeardownReport(BaseModel):
    event_id: int
    bookings_cancelled: int
    bookings_deleted: int
    attempts_detached: int
    slots_deleted: int
    time_ranges_deleted: int
    participants_deleted: int
    offers_detached: int
    event_deleted: bool
