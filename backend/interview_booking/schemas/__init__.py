from interview_booking.schemas.event import (
    EventCreate, EventResponse, TimeRangeCreate, TimeRangeResponse,
    ParticipantCreate, ParticipantResponse, PhaseUpdate, PhaseTransitionResponse,
    BookingLimitResponse, TeardownReport,
)
from interview_booking.schemas.slot import (
    SlotResponse, SlotAvailability, SlotActiveUpdate, SlotActiveResult, GenerationReport,
)
from interview_booking.schemas.booking import (
    RejectionCode, BookingCreate, BookingResult, BookingResponse,
    BookingCancelRequest, CancelResult, BookingAttemptResponse,
)
from interview_booking.schemas.rate_limit import RateLimitRequest, RateLimitStatus

__all__ = [
    "EventCreate", "EventResponse", "TimeRangeCreate", "TimeRangeResponse",
    "ParticipantCreate", "ParticipantResponse", "PhaseUpdate", "PhaseTransitionResponse",
    "BookingLimitResponse", "TeardownReport",
    "SlotResponse", "SlotAvailability", "SlotActiveUpdate", "SlotActiveResult", "GenerationReport",
    "RejectionCode", "BookingCreate", "BookingResult", "BookingResponse",
    "BookingCancelRequest", "CancelResult", "BookingAttemptResponse",
    "RateLimitRequest", "RateLimitStatus",
]
