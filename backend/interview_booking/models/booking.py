"""
Booking of one student into one slot, and the per-student ledger.

Key design decisions:
- Status moves confirmed -> cancelled only; rows are kept for history.
- Partial unique index: at most one *confirmed* booking per (student, slot),
  while any number of cancelled rows may sit alongside it.
- `event_id` is copied from the slot so per-event counts don't need a join.
- `booking_phase` is stamped at creation and never rewritten.
- StudentLedger.version is the per-student compare-and-swap key that
  linearises all of one student's bookings and cancellations, in every event.
"""

import enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Index, UniqueConstraint, CheckConstraint, text,
)
from sqlalchemy.orm import relationship

from interview_booking.db.base import Base, TimestampMixin


class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    offer_id = Column(Integer, ForeignKey("offers.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value)
    booking_phase = Column(Integer, nullable=False)
    notes = Column(String(1000), nullable=True)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancel_reason = Column(String(255), nullable=True)

    student = relationship("User", back_populates="bookings", foreign_keys=[student_id])
    slot = relationship("Slot", back_populates="bookings")

    __table_args__ = (
        CheckConstraint("status IN ('confirmed', 'cancelled')", name="check_booking_status"),
        CheckConstraint("booking_phase IN (1, 2)", name="check_booking_phase"),
        CheckConstraint(
            "(status = 'cancelled' AND cancelled_at IS NOT NULL) OR "
            "(status = 'confirmed' AND cancelled_at IS NULL)",
            name="check_cancel_fields_consistent",
        ),
        Index(
            "uq_confirmed_student_slot",
            "student_id",
            "slot_id",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
        Index("ix_bookings_student_event_status", "student_id", "event_id", "status"),
        Index("ix_bookings_slot_status", "slot_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, student={self.student_id}, slot={self.slot_id}, status={self.status})>"


class StudentLedger(Base, TimestampMixin):
    __tablename__ = "student_booking_ledgers"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    version = Column(Integer, nullable=False, default=1)

    # One row per student across all events: time conflicts span events too
    __table_args__ = (
        UniqueConstraint("student_id", name="uq_student_ledger"),
    )

    def __repr__(self) -> str:
        return f"<StudentLedger(student={self.student_id}, v={self.version})>"
