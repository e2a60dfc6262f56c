from datetime import datetime

import pytest

from backend.models.appointment import Appointment
from backend.models.enums import AppointmentStatus, AppointmentType, UserRole
from backend.models.user import User
from backend.schemas.appointment import AppointmentCreateRequest
from backend.scheduling import lifecycle
from backend.scheduling.conflicts import blocking_appointments, ensure_no_conflicts, has_conflict, intervals_overlap
from backend.scheduling.errors import ConflictError, ValidationError


def _book(db, student, lecturer, clock, start: datetime, duration: int = 30):
    request = AppointmentCreateRequest(
        lecturer_id=lecturer.id,
        subject='Project check-in',
        scheduled_at=start,
        duration_minutes=duration,
    )
    return lifecycle.create_appointment(db, request, student.id, clock)


@pytest.fixture
def second_lecturer(db) -> User:
    user = User(email='second.lecturer@edulink.edu', role=UserRole.LECTURER, full_name='Dr. Barbara Liskov')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.mark.parametrize(
    ('other_start', 'other_end', 'expected'),
    [
        (datetime(2026, 3, 2, 10, 15), datetime(2026, 3, 2, 10, 45), True),
        (datetime(2026, 3, 2, 9, 30), datetime(2026, 3, 2, 10, 0), False),
        (datetime(2026, 3, 2, 10, 30), datetime(2026, 3, 2, 11, 0), False),
        (datetime(2026, 3, 2, 9, 0), datetime(2026, 3, 2, 12, 0), True),
    ],
)
def test_intervals_overlap_is_half_open(other_start: datetime, other_end: datetime, expected: bool) -> None:
    start = datetime(2026, 3, 2, 10, 0)
    end = datetime(2026, 3, 2, 10, 30)

    assert intervals_overlap(start, end, other_start, other_end) is expected
    assert intervals_overlap(other_start, other_end, start, end) is expected


def test_overlapping_booking_is_rejected_for_lecturer(db, lecturer, student, other_student, clock) -> None:
    existing = _book(db, student, lecturer, clock, datetime(2026, 3, 2, 10, 0))

    with pytest.raises(ConflictError) as exception_info:
        _book(db, other_student, lecturer, clock, datetime(2026, 3, 2, 10, 15))

    assert exception_info.value.party == 'lecturer'
    assert exception_info.value.conflicting_ids == [existing.id]
    assert exception_info.value.message == 'Lecturer has a conflicting appointment at this time'


def test_back_to_back_booking_is_allowed(db, lecturer, student, other_student, clock) -> None:
    _book(db, student, lecturer, clock, datetime(2026, 3, 2, 10, 0))

    appointment = _book(db, other_student, lecturer, clock, datetime(2026, 3, 2, 10, 30))

    assert appointment.id is not None
    assert appointment.status == AppointmentStatus.PENDING


def test_student_double_booking_with_another_lecturer_is_rejected(
    db, lecturer, second_lecturer, student, clock
) -> None:
    _book(db, student, lecturer, clock, datetime(2026, 3, 2, 10, 0))

    with pytest.raises(ConflictError) as exception_info:
        _book(db, student, second_lecturer, clock, datetime(2026, 3, 2, 10, 0))

    assert exception_info.value.party == 'student'


def test_lecturer_is_reported_before_student(db, lecturer, student, clock) -> None:
    _book(db, student, lecturer, clock, datetime(2026, 3, 2, 10, 0))

    with pytest.raises(ConflictError) as exception_info:
        ensure_no_conflicts(db, student.id, lecturer.id, datetime(2026, 3, 2, 10, 0), 30)

    assert exception_info.value.party == 'lecturer'


def test_cancelled_appointments_do_not_block(db, lecturer, student, other_student, clock) -> None:
    existing = _book(db, student, lecturer, clock, datetime(2026, 3, 2, 10, 0))
    lifecycle.update_status(db, existing.id, AppointmentStatus.CANCELLED, student.id, clock)

    replacement = _book(db, other_student, lecturer, clock, datetime(2026, 3, 2, 10, 0))

    assert replacement.id != existing.id


def test_excluded_appointment_is_ignored(db, lecturer, student, clock) -> None:
    existing = _book(db, student, lecturer, clock, datetime(2026, 3, 2, 10, 0))

    assert has_conflict(db, lecturer.id, datetime(2026, 3, 2, 10, 0), datetime(2026, 3, 2, 10, 30))
    assert not has_conflict(
        db,
        lecturer.id,
        datetime(2026, 3, 2, 10, 0),
        datetime(2026, 3, 2, 10, 30),
        exclude_appointment_id=existing.id,
    )


def test_long_appointment_starting_before_range_is_found(db, lecturer, student) -> None:
    long_meeting = Appointment(
        student_id=student.id,
        lecturer_id=lecturer.id,
        subject='Thesis defence rehearsal',
        scheduled_at=datetime(2026, 3, 2, 2, 0),
        duration_minutes=480,
        type=AppointmentType.THESIS_GUIDANCE,
        status=AppointmentStatus.CONFIRMED,
        is_recurring=False,
    )
    db.add(long_meeting)
    db.commit()

    found = blocking_appointments(db, lecturer.id, datetime(2026, 3, 2, 9, 30), datetime(2026, 3, 2, 10, 0))

    assert [appointment.id for appointment in found] == [long_meeting.id]
    assert blocking_appointments(db, lecturer.id, datetime(2026, 3, 2, 10, 0), datetime(2026, 3, 2, 10, 30)) == []


def test_non_positive_duration_is_rejected(db, lecturer, student) -> None:
    with pytest.raises(ValidationError):
        ensure_no_conflicts(db, student.id, lecturer.id, datetime(2026, 3, 2, 10, 0), 0)


@pytest.mark.parametrize('status', list(AppointmentStatus))
def test_only_blocking_statuses_occupy_the_interval(db, lecturer, student, status: AppointmentStatus) -> None:
    db.add(Appointment(
        student_id=student.id,
        lecturer_id=lecturer.id,
        subject='Status check',
        scheduled_at=datetime(2026, 3, 2, 10, 0),
        duration_minutes=30,
        type=AppointmentType.CONSULTATION,
        status=status,
        is_recurring=False,
    ))
    db.commit()

    window = (datetime(2026, 3, 2, 10, 0), datetime(2026, 3, 2, 10, 30))

    assert has_conflict(db, lecturer.id, *window) is status.is_blocking
    assert has_conflict(db, student.id, *window) is status.is_blocking
