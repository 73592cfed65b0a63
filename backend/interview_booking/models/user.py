"""
Platform user: student, company representative or admin.

Only the fields the booking engine reads live here; profiles, resumes and
credentials are owned by the surrounding platform.
"""

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint
from sqlalchemy.orm import relationship

from interview_booking.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="student")
    # Students who already hold an internship may only book once phase 2 opens.
    is_deprioritized = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    bookings = relationship(
        "Booking",
        back_populates="student",
        foreign_keys="Booking.student_id",
        lazy="noload",
    )

    __table_args__ = (
        CheckConstraint("role IN ('student', 'company', 'admin')", name="check_user_role"),
    )

    @property
    def is_student(self) -> bool:
        return self.role == "student"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
