"""Closed vocabularies shared by the scheduling models."""

import enum
from datetime import date


class UserRole(str, enum.Enum):
    STUDENT = 'STUDENT'
    LECTURER = 'LECTURER'
    ADMIN = 'ADMIN'


class AppointmentType(str, enum.Enum):
    OFFICE_HOURS = 'OFFICE_HOURS'
    CONSULTATION = 'CONSULTATION'
    PROJECT_DISCUSSION = 'PROJECT_DISCUSSION'
    EXAM_REVIEW = 'EXAM_REVIEW'
    THESIS_GUIDANCE = 'THESIS_GUIDANCE'
    ACADEMIC_ADVISING = 'ACADEMIC_ADVISING'
    OTHER = 'OTHER'

    @property
    def display_name(self) -> str:
        return _APPOINTMENT_TYPE_NAMES[self]


class AppointmentStatus(str, enum.Enum):
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    CANCELLED = 'CANCELLED'
    COMPLETED = 'COMPLETED'
    NO_SHOW = 'NO_SHOW'
    RESCHEDULED = 'RESCHEDULED'

    @property
    def display_name(self) -> str:
        return _APPOINTMENT_STATUS_NAMES[self]

    @property
    def is_blocking(self) -> bool:
        return self in BLOCKING_STATUSES


class RecurringPattern(str, enum.Enum):
    WEEKLY = 'WEEKLY'
    BIWEEKLY = 'BIWEEKLY'
    MONTHLY = 'MONTHLY'


class AvailabilityType(str, enum.Enum):
    OFFICE_HOURS = 'OFFICE_HOURS'
    OPEN = 'OPEN'
    PROJECT_MEETINGS = 'PROJECT_MEETINGS'
    EXAM_REVIEWS = 'EXAM_REVIEWS'
    THESIS_SUPERVISION = 'THESIS_SUPERVISION'
    ACADEMIC_ADVISING = 'ACADEMIC_ADVISING'
    RESEARCH_DISCUSSION = 'RESEARCH_DISCUSSION'
    BLOCKED = 'BLOCKED'

    @property
    def display_name(self) -> str:
        return _AVAILABILITY_TYPE_NAMES[self]

    @property
    def is_bookable(self) -> bool:
        return self is not AvailabilityType.BLOCKED


class DayOfWeek(str, enum.Enum):
    MONDAY = 'MONDAY'
    TUESDAY = 'TUESDAY'
    WEDNESDAY = 'WEDNESDAY'
    THURSDAY = 'THURSDAY'
    FRIDAY = 'FRIDAY'
    SATURDAY = 'SATURDAY'
    SUNDAY = 'SUNDAY'

    @classmethod
    def of(cls, value: date) -> 'DayOfWeek':
        return list(cls)[value.weekday()]

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


BLOCKING_STATUSES = frozenset({
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.RESCHEDULED,
})

_APPOINTMENT_TYPE_NAMES = {
    AppointmentType.OFFICE_HOURS: 'Office Hours',
    AppointmentType.CONSULTATION: 'Consultation',
    AppointmentType.PROJECT_DISCUSSION: 'Project Discussion',
    AppointmentType.EXAM_REVIEW: 'Exam Review',
    AppointmentType.THESIS_GUIDANCE: 'Thesis Guidance',
    AppointmentType.ACADEMIC_ADVISING: 'Academic Advising',
    AppointmentType.OTHER: 'Other',
}

_APPOINTMENT_STATUS_NAMES = {
    AppointmentStatus.PENDING: 'Pending Confirmation',
    AppointmentStatus.CONFIRMED: 'Confirmed',
    AppointmentStatus.CANCELLED: 'Cancelled',
    AppointmentStatus.COMPLETED: 'Completed',
    AppointmentStatus.NO_SHOW: 'No Show',
    AppointmentStatus.RESCHEDULED: 'Rescheduled',
}

_AVAILABILITY_TYPE_NAMES = {
    AvailabilityType.OFFICE_HOURS: 'Office Hours',
    AvailabilityType.OPEN: 'Open Consultation',
    AvailabilityType.PROJECT_MEETINGS: 'Project Meetings',
    AvailabilityType.EXAM_REVIEWS: 'Exam Reviews',
    AvailabilityType.THESIS_SUPERVISION: 'Thesis Supervision',
    AvailabilityType.ACADEMIC_ADVISING: 'Academic Advising',
    AvailabilityType.RESEARCH_DISCUSSION: 'Research Discussion',
    AvailabilityType.BLOCKED: 'Blocked Time',
}
