"""Availability rule and generated slot schemas."""

import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from backend.core import config
from backend.models.enums import AppointmentType, AvailabilityType, DayOfWeek


def _normalize_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def _normalize_day(value):
    if isinstance(value, str):
        return value.strip().upper()
    return value


class AvailabilityRuleRequest(BaseModel):
    """Either ``date`` or ``day_of_week`` with ``is_recurring`` set."""
    date: Optional[datetime.date] = None
    day_of_week: Optional[DayOfWeek] = None
    is_recurring: bool = False
    recurring_start_date: Optional[datetime.date] = None
    recurring_end_date: Optional[datetime.date] = None
    start_time: datetime.time
    end_time: datetime.time
    slot_duration_minutes: int = config.DEFAULT_SLOT_DURATION_MINUTES
    location: Optional[str] = None
    allowed_type: Optional[AppointmentType] = None
    availability_type: AvailabilityType = AvailabilityType.OPEN
    description: Optional[str] = None
    is_active: bool = True

    normalize_strings = field_validator('location', 'description')(_normalize_text)
    normalize_weekday = field_validator('day_of_week', mode='before')(_normalize_day)


class AvailabilityRuleUpdateRequest(BaseModel):
    date: Optional[datetime.date] = None
    day_of_week: Optional[DayOfWeek] = None
    recurring_start_date: Optional[datetime.date] = None
    recurring_end_date: Optional[datetime.date] = None
    start_time: Optional[datetime.time] = None
    end_time: Optional[datetime.time] = None
    slot_duration_minutes: Optional[int] = None
    location: Optional[str] = None
    allowed_type: Optional[AppointmentType] = None
    availability_type: Optional[AvailabilityType] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None

    normalize_strings = field_validator('location', 'description')(_normalize_text)
    normalize_weekday = field_validator('day_of_week', mode='before')(_normalize_day)


class BulkRuleDeleteRequest(BaseModel):
    rule_ids: list[int] = Field(min_length=1)


class AvailabilityRuleResponse(BaseModel):
    id: int
    lecturer_id: int
    date: Optional[datetime.date] = None
    day_of_week: Optional[DayOfWeek] = None
    is_recurring: bool
    recurring_start_date: Optional[datetime.date] = None
    recurring_end_date: Optional[datetime.date] = None
    start_time: Optional[datetime.time] = None
    end_time: Optional[datetime.time] = None
    slot_duration_minutes: Optional[int] = None
    location: Optional[str] = None
    allowed_type: Optional[AppointmentType] = None
    availability_type: AvailabilityType
    description: Optional[str] = None
    is_active: bool
    display_name: str
    time_range: str
    total_slots: int
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None


class GeneratedTimeSlotResponse(BaseModel):
    slot_id: str
    availability_id: Optional[int] = None
    date: datetime.date
    start_time: datetime.time
    end_time: datetime.time
    start_datetime: datetime.datetime
    end_datetime: datetime.datetime
    duration_minutes: int
    location: Optional[str] = None
    type: AppointmentType
    is_available: bool
    is_blocked: bool
    is_booked: bool
    appointment_id: Optional[int] = None
    appointment_status: Optional[str] = None
    student_name: Optional[str] = None

    class Config:
        from_attributes = True


class AvailabilityStatsResponse(BaseModel):
    total: int
    recurring: int
    one_time: int
    available_next_days: int
