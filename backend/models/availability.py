"""Availability model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, ForeignKey, Index, Integer, String, Text, Time

from backend.database import Base
from backend.models.enums import AppointmentType, AvailabilityType, DayOfWeek


class AvailabilityRule(Base):
    """A lecturer's bookable window, either on one date or on a weekday."""
    __tablename__ = "availability_rules"
    __table_args__ = (
        Index("idx_availability_rules_lecturer_active", "lecturer_id", "is_active"),
    )

    id = Column(Integer, primary_key=True)
    lecturer_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    date = Column(Date)
    day_of_week = Column(Enum(DayOfWeek, native_enum=False, length=16))
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_start_date = Column(Date)
    recurring_end_date = Column(Date)

    start_time = Column(Time)
    end_time = Column(Time)
    slot_duration_minutes = Column(Integer)

    location = Column(String)
    allowed_type = Column(Enum(AppointmentType, native_enum=False, length=32))
    availability_type = Column(
        Enum(AvailabilityType, native_enum=False, length=32),
        nullable=False,
        default=AvailabilityType.OPEN,
    )
    description = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    @property
    def display_name(self) -> str:
        kind = (self.availability_type or AvailabilityType.OPEN).display_name
        if self.is_recurring and self.day_of_week is not None:
            return f"{self.day_of_week.display_name} {kind}"
        if self.date is not None:
            return f"{self.date.isoformat()} {kind}"
        return kind

    @property
    def time_range(self) -> str:
        if self.start_time is None or self.end_time is None:
            return ""
        return f"{self.start_time.strftime('%H:%M')} - {self.end_time.strftime('%H:%M')}"
