"""Appointment model definitions."""

from datetime import datetime, timedelta

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from backend.database import Base
from backend.models.enums import AppointmentStatus, AppointmentType, RecurringPattern


class Appointment(Base):
    """A meeting between one student and one lecturer.

    Recurring series are stored flat: the root carries ``is_recurring`` and the
    pattern, every generated instance points back at it through
    ``parent_appointment_id``.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_lecturer_start", "lecturer_id", "scheduled_at"),
        Index("idx_appointments_student_start", "student_id", "scheduled_at"),
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    lecturer_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    subject = Column(String, nullable=False)
    description = Column(Text)
    scheduled_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    location = Column(String)
    type = Column(Enum(AppointmentType, native_enum=False, length=32), nullable=False)
    status = Column(
        Enum(AppointmentStatus, native_enum=False, length=16),
        nullable=False,
        default=AppointmentStatus.PENDING,
    )

    meeting_link = Column(String)
    meeting_password = Column(String)

    course_id = Column(Integer, ForeignKey("courses.id"))
    notes = Column(Text)
    booked_at = Column(DateTime)
    last_modified_at = Column(DateTime)
    last_modified_by = Column(String)

    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_pattern = Column(Enum(RecurringPattern, native_enum=False, length=16))
    recurring_end_date = Column(DateTime)
    parent_appointment_id = Column(Integer, ForeignKey("appointments.id"), index=True)

    attachment_ids = Column(JSON, default=list)

    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    student = relationship("User", foreign_keys=[student_id])
    lecturer = relationship("User", foreign_keys=[lecturer_id])
    course = relationship("Course")

    @property
    def end_time(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    @property
    def is_series_root(self) -> bool:
        return bool(self.is_recurring) and self.parent_appointment_id is None

    def is_participant(self, user_id: int) -> bool:
        return user_id in (self.student_id, self.lecturer_id)

    def touch(self, now: datetime, actor: str) -> None:
        self.last_modified_at = now
        self.last_modified_by = actor
        self.updated_at = now
