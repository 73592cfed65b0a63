"""
Companies, their offers, and event participation.

A company gets slots for an event only while it has an active
EventParticipant row for that event.
"""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from interview_booking.db.base import Base, TimestampMixin


class Company(Base, TimestampMixin):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    is_verified = Column(Boolean, nullable=False, default=True)

    offers = relationship("Offer", back_populates="company", lazy="noload")

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name={self.name})>"


class Offer(Base, TimestampMixin):
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    # NULL means the offer is not tied to a specific event
    event_id = Column(Integer, ForeignKey("events.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    company = relationship("Company", back_populates="offers")

    def __repr__(self) -> str:
        return f"<Offer(id={self.id}, company={self.company_id}, title={self.title})>"


class EventParticipant(Base, TimestampMixin):
    __tablename__ = "event_participants"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("event_id", "company_id", name="uq_event_participant"),
    )

    def __repr__(self) -> str:
        return f"<EventParticipant(event={self.event_id}, company={self.company_id}, active={self.is_active})>"
