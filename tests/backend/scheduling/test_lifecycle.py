from datetime import datetime

import pytest

from backend.models.appointment import Appointment
from backend.models.enums import AppointmentStatus, AppointmentType
from backend.schemas.appointment import AppointmentCreateRequest, AppointmentUpdateRequest
from backend.scheduling import lifecycle
from backend.scheduling.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StateError,
    ValidationError,
)

TEN_AM = datetime(2026, 3, 2, 10, 0)


def _request(**overrides) -> AppointmentCreateRequest:
    values = {
        'subject': 'Lab report questions',
        'scheduled_at': TEN_AM,
        'duration_minutes': 30,
    }
    values.update(overrides)
    return AppointmentCreateRequest(**values)


@pytest.fixture
def booked(db, lecturer, student, clock) -> Appointment:
    return lifecycle.create_appointment(db, _request(lecturer_id=lecturer.id), student.id, clock)


@pytest.fixture
def confirmed(db, booked, lecturer, clock) -> Appointment:
    return lifecycle.update_status(db, booked.id, AppointmentStatus.CONFIRMED, lecturer.id, clock)


def test_student_books_with_lecturer(db, booked, lecturer, student, clock) -> None:
    assert booked.student_id == student.id
    assert booked.lecturer_id == lecturer.id
    assert booked.status == AppointmentStatus.PENDING
    assert booked.type == AppointmentType.CONSULTATION
    assert booked.booked_at == clock.now()
    assert booked.last_modified_by == str(student.id)
    assert booked.end_time == datetime(2026, 3, 2, 10, 30)


def test_lecturer_books_with_student(db, lecturer, student, clock) -> None:
    appointment = lifecycle.create_appointment(db, _request(student_id=student.id), lecturer.id, clock)

    assert appointment.student_id == student.id
    assert appointment.lecturer_id == lecturer.id


def test_student_booking_requires_lecturer_id(db, student, clock) -> None:
    with pytest.raises(ValidationError):
        lifecycle.create_appointment(db, _request(), student.id, clock)


def test_booking_with_a_non_lecturer_is_rejected(db, student, other_student, clock) -> None:
    with pytest.raises(ValidationError) as exception_info:
        lifecycle.create_appointment(db, _request(lecturer_id=other_student.id), student.id, clock)

    assert 'not a lecturer' in exception_info.value.message


def test_admin_cannot_book(db, admin, lecturer, clock) -> None:
    with pytest.raises(PermissionDeniedError):
        lifecycle.create_appointment(db, _request(lecturer_id=lecturer.id), admin.id, clock)


def test_booking_in_the_past_is_rejected(db, lecturer, student, clock) -> None:
    with pytest.raises(ValidationError) as exception_info:
        lifecycle.create_appointment(
            db,
            _request(lecturer_id=lecturer.id, scheduled_at=datetime(2026, 2, 27, 10, 0)),
            student.id,
            clock,
        )

    assert exception_info.value.message == 'Cannot schedule appointments in the past'


@pytest.mark.parametrize('duration', [0, 481])
def test_booking_duration_must_be_in_range(db, lecturer, student, clock, duration: int) -> None:
    with pytest.raises(ValidationError):
        lifecycle.create_appointment(
            db,
            _request(lecturer_id=lecturer.id, duration_minutes=duration),
            student.id,
            clock,
        )


def test_course_booking_requires_enrollment(db, lecturer, student, other_student, course, clock) -> None:
    appointment = lifecycle.create_appointment(
        db,
        _request(lecturer_id=lecturer.id, course_id=course.id),
        student.id,
        clock,
    )
    assert appointment.course.name == 'Introduction to Computing'

    with pytest.raises(ValidationError):
        lifecycle.create_appointment(
            db,
            _request(lecturer_id=lecturer.id, course_id=course.id, scheduled_at=datetime(2026, 3, 2, 11, 0)),
            other_student.id,
            clock,
        )


def test_lecturer_confirms_pending_appointment(db, confirmed, lecturer) -> None:
    assert confirmed.status == AppointmentStatus.CONFIRMED
    assert confirmed.last_modified_by == str(lecturer.id)


def test_confirming_twice_is_a_state_error(db, confirmed, lecturer, clock) -> None:
    with pytest.raises(StateError):
        lifecycle.update_status(db, confirmed.id, AppointmentStatus.CONFIRMED, lecturer.id, clock)


def test_student_cannot_confirm(db, booked, student, clock) -> None:
    with pytest.raises(PermissionDeniedError):
        lifecycle.update_status(db, booked.id, AppointmentStatus.CONFIRMED, student.id, clock)

    db.refresh(booked)
    assert booked.status == AppointmentStatus.PENDING


def test_only_confirmed_appointments_can_be_completed(db, booked, lecturer, clock) -> None:
    with pytest.raises(StateError):
        lifecycle.update_status(db, booked.id, AppointmentStatus.COMPLETED, lecturer.id, clock)


def test_completed_appointment_cannot_be_cancelled(db, confirmed, lecturer, student, clock) -> None:
    lifecycle.update_status(db, confirmed.id, AppointmentStatus.COMPLETED, lecturer.id, clock)

    with pytest.raises(StateError):
        lifecycle.update_status(db, confirmed.id, AppointmentStatus.CANCELLED, student.id, clock)


def test_nothing_moves_back_to_pending(db, booked, lecturer, clock) -> None:
    with pytest.raises(StateError):
        lifecycle.update_status(db, booked.id, AppointmentStatus.PENDING, lecturer.id, clock)


def test_student_cannot_mark_no_show(db, booked, student, clock) -> None:
    with pytest.raises(PermissionDeniedError):
        lifecycle.update_status(db, booked.id, AppointmentStatus.NO_SHOW, student.id, clock)


def test_reviving_cancelled_appointment_rechecks_conflicts(
    db, booked, lecturer, student, other_student, clock
) -> None:
    lifecycle.update_status(db, booked.id, AppointmentStatus.CANCELLED, student.id, clock)
    lifecycle.create_appointment(db, _request(lecturer_id=lecturer.id), other_student.id, clock)

    with pytest.raises(ConflictError):
        lifecycle.update_status(db, booked.id, AppointmentStatus.RESCHEDULED, student.id, clock)

    db.refresh(booked)
    assert booked.status == AppointmentStatus.CANCELLED


def test_lecturer_status_notes_are_saved(db, booked, lecturer, clock) -> None:
    updated = lifecycle.update_status(
        db, booked.id, AppointmentStatus.CONFIRMED, lecturer.id, clock, notes='Bring the lab data'
    )

    assert updated.notes == 'Bring the lab data'


def test_student_cannot_add_notes(db, booked, student, clock) -> None:
    with pytest.raises(PermissionDeniedError):
        lifecycle.update_appointment(db, booked.id, AppointmentUpdateRequest(notes='hi'), student.id, clock)


def test_non_participant_cannot_read(db, booked, other_student) -> None:
    with pytest.raises(PermissionDeniedError):
        lifecycle.get_participant_appointment(db, booked.id, other_student.id)


def test_missing_appointment_is_not_found(db, student) -> None:
    with pytest.raises(NotFoundError):
        lifecycle.get_participant_appointment(db, 999, student.id)


def test_reschedule_moves_interval_and_ignores_itself(db, booked, student, clock) -> None:
    updated = lifecycle.update_appointment(
        db,
        booked.id,
        AppointmentUpdateRequest(scheduled_at=datetime(2026, 3, 2, 10, 15), location='Room 12'),
        student.id,
        clock,
    )

    assert updated.scheduled_at == datetime(2026, 3, 2, 10, 15)
    assert updated.location == 'Room 12'


def test_reschedule_into_conflict_is_rejected(db, booked, lecturer, other_student, clock) -> None:
    other = lifecycle.create_appointment(
        db,
        _request(lecturer_id=lecturer.id, scheduled_at=datetime(2026, 3, 2, 11, 0)),
        other_student.id,
        clock,
    )

    with pytest.raises(ConflictError):
        lifecycle.update_appointment(
            db, other.id, AppointmentUpdateRequest(scheduled_at=datetime(2026, 3, 2, 10, 0)), lecturer.id, clock
        )

    db.refresh(other)
    assert other.scheduled_at == datetime(2026, 3, 2, 11, 0)


def test_cancelled_appointment_cannot_be_rescheduled(db, booked, student, clock) -> None:
    lifecycle.update_status(db, booked.id, AppointmentStatus.CANCELLED, student.id, clock)

    with pytest.raises(StateError):
        lifecycle.update_appointment(
            db, booked.id, AppointmentUpdateRequest(duration_minutes=45), student.id, clock
        )


def test_delete_pending_appointment(db, booked, student) -> None:
    lifecycle.delete_appointment(db, booked.id, student.id)

    assert db.get(Appointment, booked.id) is None


def test_delete_requires_pending_status(db, confirmed, student) -> None:
    with pytest.raises(StateError):
        lifecycle.delete_appointment(db, confirmed.id, student.id)


def test_listing_filters_and_views(db, booked, lecturer, student, other_student, clock) -> None:
    lifecycle.create_appointment(
        db,
        _request(
            lecturer_id=lecturer.id,
            scheduled_at=datetime(2026, 3, 4, 14, 0),
            type=AppointmentType.EXAM_REVIEW,
        ),
        other_student.id,
        clock,
    )

    assert len(lifecycle.list_appointments(db, lecturer.id)) == 2
    assert len(lifecycle.list_appointments(db, student.id)) == 1
    assert len(lifecycle.list_appointments(db, lecturer.id, appointment_type=AppointmentType.EXAM_REVIEW)) == 1

    clock.advance_to(datetime(2026, 3, 2, 8, 0))
    assert [appointment.id for appointment in lifecycle.list_today(db, lecturer.id, clock)] == [booked.id]
    assert len(lifecycle.list_upcoming(db, lecturer.id, clock)) == 2
    assert lifecycle.appointment_stats(db, lecturer.id, clock) == {
        'today': 1,
        'upcoming': 2,
        'pending': 2,
        'total': 2,
    }


def test_auto_complete_marks_only_expired_confirmed(db, confirmed, lecturer, student, other_student, clock) -> None:
    pending = lifecycle.create_appointment(
        db,
        _request(lecturer_id=lecturer.id, scheduled_at=datetime(2026, 3, 2, 11, 0)),
        other_student.id,
        clock,
    )

    # 10:30 end plus the two hour grace period has not passed yet
    clock.advance_to(datetime(2026, 3, 2, 12, 30))
    assert lifecycle.auto_complete_expired(db, clock) == 0

    clock.advance_to(datetime(2026, 3, 2, 12, 31))
    assert lifecycle.auto_complete_expired(db, clock) == 1

    db.refresh(confirmed)
    db.refresh(pending)
    assert confirmed.status == AppointmentStatus.COMPLETED
    assert confirmed.last_modified_by == lifecycle.SYSTEM_AUTO_COMPLETE
    assert confirmed.notes.startswith('Auto-completed by system')
    assert pending.status == AppointmentStatus.PENDING


def test_lecturer_marks_confirmed_appointment_as_no_show(
    db, confirmed, lecturer, student, other_student, clock
) -> None:
    no_show = lifecycle.update_status(db, confirmed.id, AppointmentStatus.NO_SHOW, lecturer.id, clock)

    assert no_show.status == AppointmentStatus.NO_SHOW
    replacement = lifecycle.create_appointment(db, _request(lecturer_id=lecturer.id), other_student.id, clock)
    assert replacement.scheduled_at == TEN_AM


def test_rescheduled_appointment_keeps_blocking(db, booked, lecturer, student, other_student, clock) -> None:
    lifecycle.update_status(db, booked.id, AppointmentStatus.RESCHEDULED, student.id, clock)

    with pytest.raises(ConflictError):
        lifecycle.create_appointment(db, _request(lecturer_id=lecturer.id), other_student.id, clock)
