"""
Append-only diagnostics tables: booking attempts and failed logins.

Neither table has foreign keys. Attempt rows must outlive the slots and
events they mention, and failed logins are keyed by raw identity strings.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index, func

from interview_booking.db.base import Base


class BookingAttempt(Base):
    __tablename__ = "booking_attempts"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, nullable=True, index=True)
    slot_id = Column(Integer, nullable=True, index=True)
    event_id = Column(Integer, nullable=True, index=True)
    success = Column(Boolean, nullable=False)
    error_code = Column(String(50), nullable=True)
    error_message = Column(String(500), nullable=True)
    booking_phase = Column(Integer, nullable=True)
    student_booking_count = Column(Integer, nullable=True)
    slot_available_capacity = Column(Integer, nullable=True)
    retries = Column(Integer, nullable=False, default=0)
    response_time_ms = Column(Integer, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<BookingAttempt(student={self.student_id}, slot={self.slot_id}, success={self.success}, code={self.error_code})>"


class FailedLoginAttempt(Base):
    __tablename__ = "failed_login_attempts"

    id = Column(Integer, primary_key=True, index=True)
    identity = Column(String(255), nullable=False)
    ip_address = Column(String(64), nullable=False)
    attempt_time = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_failed_login_identity_ip_time", "identity", "ip_address", "attempt_time"),
    )
