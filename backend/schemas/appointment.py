"""Appointment request and response schemas."""

import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from backend.core import config
from backend.models.enums import AppointmentStatus, AppointmentType, RecurringPattern

MAX_NOTES_LENGTH = 2000


def _to_local_minute(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.replace(second=0, microsecond=0)


def _normalize_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


class AppointmentCreateRequest(BaseModel):
    """Booking request.

    A student books with ``lecturer_id``; a lecturer books with ``student_id``.
    """
    student_id: Optional[int] = None
    lecturer_id: Optional[int] = None
    subject: str
    description: Optional[str] = None
    scheduled_at: datetime.datetime
    duration_minutes: int = config.DEFAULT_SLOT_DURATION_MINUTES
    location: Optional[str] = None
    type: AppointmentType = AppointmentType.CONSULTATION
    meeting_link: Optional[str] = None
    meeting_password: Optional[str] = None
    course_id: Optional[int] = None
    attachment_ids: list[str] = []
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None
    recurring_end_date: Optional[datetime.datetime] = None

    @field_validator('subject')
    @classmethod
    def validate_subject(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Subject is required.')
        return normalized

    normalize_strings = field_validator('description', 'location', 'meeting_link', 'meeting_password')(
        _normalize_text
    )
    normalize_times = field_validator('scheduled_at', 'recurring_end_date')(_to_local_minute)


class AppointmentUpdateRequest(BaseModel):
    subject: Optional[str] = None
    description: Optional[str] = None
    scheduled_at: Optional[datetime.datetime] = None
    duration_minutes: Optional[int] = None
    location: Optional[str] = None
    type: Optional[AppointmentType] = None
    meeting_link: Optional[str] = None
    meeting_password: Optional[str] = None
    attachment_ids: Optional[list[str]] = None
    notes: Optional[str] = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        value = _normalize_text(value)
        if value is not None and len(value) > MAX_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')
        return value

    normalize_strings = field_validator('subject', 'description', 'location', 'meeting_link', 'meeting_password')(
        _normalize_text
    )
    normalize_times = field_validator('scheduled_at')(_to_local_minute)


class AppointmentStatusUpdateRequest(BaseModel):
    status: AppointmentStatus
    notes: Optional[str] = None

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    normalize_notes = field_validator('notes')(_normalize_text)


class AppointmentResponse(BaseModel):
    id: int
    student_id: int
    lecturer_id: int
    student_name: Optional[str] = None
    lecturer_name: Optional[str] = None
    subject: str
    description: Optional[str] = None
    scheduled_at: datetime.datetime
    end_time: datetime.datetime
    duration_minutes: int
    location: Optional[str] = None
    type: AppointmentType
    type_display_name: str
    status: AppointmentStatus
    status_display_name: str
    meeting_link: Optional[str] = None
    notes: Optional[str] = None
    course_id: Optional[int] = None
    course_name: Optional[str] = None
    booked_at: Optional[datetime.datetime] = None
    last_modified_at: Optional[datetime.datetime] = None
    last_modified_by: Optional[str] = None
    is_recurring: bool
    recurring_pattern: Optional[RecurringPattern] = None
    recurring_end_date: Optional[datetime.datetime] = None
    parent_appointment_id: Optional[int] = None
    attachment_ids: list[str] = []
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None


class AppointmentStatsResponse(BaseModel):
    today: int
    upcoming: int
    pending: int
    total: int


class AutoCompleteResponse(BaseModel):
    completed: int
