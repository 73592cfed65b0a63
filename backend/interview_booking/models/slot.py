"""
Bookable interview slot.

Key design decisions:
- Capacity is never cached as a counter. Free seats are always
  `capacity - COUNT(confirmed bookings)`, so cancellations can't drift.
- `version` is the per-slot compare-and-swap key. Every booking, cancellation,
  deactivation and regeneration touching the slot bumps it.
- Unique (event_id, company_id, start_time) makes generation idempotent.
"""

from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from interview_booking.db.base import Base, TimestampMixin


class Slot(Base, TimestampMixin):
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    time_range_id = Column(Integer, ForeignKey("time_ranges.id", ondelete="SET NULL"), nullable=True, index=True)
    offer_id = Column(Integer, ForeignKey("offers.id", ondelete="SET NULL"), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    capacity = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    version = Column(Integer, nullable=False, default=1)

    bookings = relationship("Booking", back_populates="slot", lazy="noload")

    __table_args__ = (
        UniqueConstraint("event_id", "company_id", "start_time", name="uq_slot_company_start"),
        CheckConstraint("capacity > 0", name="check_slot_capacity_positive"),
        CheckConstraint("start_time < end_time", name="check_slot_time_order"),
        Index("ix_slots_company_event_start", "company_id", "event_id", "start_time"),
    )

    def __repr__(self) -> str:
        return f"<Slot(id={self.id}, company={self.company_id}, {self.start_time}-{self.end_time}, cap={self.capacity})>"
