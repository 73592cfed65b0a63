from interview_booking.models.user import User
from interview_booking.models.company import Company, Offer, EventParticipant
from interview_booking.models.event import Event, TimeRange, Phase, PhaseMode
from interview_booking.models.slot import Slot
from interview_booking.models.booking import Booking, BookingStatus, StudentLedger
from interview_booking.models.audit import BookingAttempt, FailedLoginAttempt

__all__ = [
    "User", "Company", "Offer", "EventParticipant",
    "Event", "TimeRange", "Phase", "PhaseMode",
    "Slot", "Booking", "BookingStatus", "StudentLedger",
    "BookingAttempt", "FailedLoginAttempt",
]
