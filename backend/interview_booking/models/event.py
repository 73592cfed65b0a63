"""
Recruiting event with its admission-phase configuration, and the time ranges
slots are generated from.

Key design decisions:
- `current_phase` + `phase_version` form a versioned phase record. Phase
  changes bump the version with a compare-and-swap so two tickers (or a ticker
  and an admin) never double-apply a transition.
- `phase_mode` = 'manual' pins the phase; the ticker leaves such events alone
  until automatic mode is resumed explicitly.
- Phase windows are half-open: [start, end).
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, Time, DateTime, ForeignKey, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship

from interview_booking.db.base import Base, TimestampMixin


class Phase(enum.IntEnum):
    NOT_STARTED = 0
    PHASE_1 = 1
    PHASE_2 = 2
    CLOSED = 3


class PhaseMode(str, enum.Enum):
    DATE_BASED = "date-based"
    MANUAL = "manual"


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    date = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Slot generation defaults
    interview_duration_minutes = Column(Integer, nullable=False, default=15)
    buffer_minutes = Column(Integer, nullable=False, default=5)
    slots_per_time = Column(Integer, nullable=False, default=1)

    # Admission phases
    phase_mode = Column(String(20), nullable=False, default=PhaseMode.DATE_BASED.value)
    current_phase = Column(Integer, nullable=False, default=int(Phase.NOT_STARTED))
    phase_version = Column(Integer, nullable=False, default=1)
    phase1_start = Column(DateTime(timezone=True), nullable=False)
    phase1_end = Column(DateTime(timezone=True), nullable=False)
    phase2_start = Column(DateTime(timezone=True), nullable=False)
    phase2_end = Column(DateTime(timezone=True), nullable=False)
    phase1_max_bookings = Column(Integer, nullable=False, default=3)
    phase2_max_bookings = Column(Integer, nullable=False, default=6)

    time_ranges = relationship(
        "TimeRange", back_populates="event", lazy="noload", order_by="TimeRange.start_time"
    )

    __table_args__ = (
        CheckConstraint("interview_duration_minutes > 0", name="check_event_duration_positive"),
        CheckConstraint("buffer_minutes >= 0", name="check_event_buffer_non_negative"),
        CheckConstraint("slots_per_time > 0", name="check_event_capacity_positive"),
        CheckConstraint("phase_mode IN ('date-based', 'manual')", name="check_event_phase_mode"),
        CheckConstraint("current_phase IN (0, 1, 2, 3)", name="check_event_phase_value"),
        CheckConstraint("phase1_max_bookings >= 0", name="check_phase1_ceiling_non_negative"),
        CheckConstraint("phase2_max_bookings >= phase1_max_bookings", name="check_phase2_ceiling_cumulative"),
        CheckConstraint("phase1_start < phase1_end", name="check_phase1_window"),
        CheckConstraint("phase1_end <= phase2_start", name="check_phase1_before_phase2"),
        CheckConstraint("phase2_start < phase2_end", name="check_phase2_window"),
        Index("ix_events_active_mode", "is_active", "phase_mode"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, name={self.name}, phase={self.current_phase}, mode={self.phase_mode})>"


class TimeRange(Base, TimestampMixin):
    """One interview session window of an event day."""

    __tablename__ = "time_ranges"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    day = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    # NULL falls back to the event default
    interview_duration_minutes = Column(Integer, nullable=True)
    buffer_minutes = Column(Integer, nullable=True)
    slots_per_time = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    event = relationship("Event", back_populates="time_ranges")

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="check_time_range_order"),
        Index("ix_time_ranges_event_day", "event_id", "day"),
    )

    def __repr__(self) -> str:
        return f"<TimeRange(id={self.id}, event={self.event_id}, {self.day} {self.start_time}-{self.end_time})>"
