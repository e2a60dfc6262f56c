"""Appointment lifecycle: booking, rescheduling, status changes and deletion.

Every operation that can move an appointment interval, or make an appointment
blocking again, runs its conflict check and its write inside
``participant_lock`` for both participants.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.core import config
from backend.models.appointment import Appointment
from backend.models.enums import BLOCKING_STATUSES, AppointmentStatus, AppointmentType, UserRole
from backend.schemas.appointment import AppointmentCreateRequest, AppointmentUpdateRequest
from backend.scheduling.clock import Clock
from backend.scheduling.conflicts import ensure_no_conflicts
from backend.scheduling.directory import get_user, is_lecturer_of_course, is_student_enrolled, require_role
from backend.scheduling.errors import NotFoundError, PermissionDeniedError, StateError, ValidationError
from backend.scheduling.locks import participant_lock
from backend.scheduling.recurrence import expand_recurrence
from backend.scheduling.slots import day_bounds

logger = logging.getLogger(__name__)

SYSTEM_AUTO_COMPLETE = 'SYSTEM_AUTO_COMPLETE'

RESCHEDULABLE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})

EDITABLE_FIELDS = (
    'subject',
    'description',
    'location',
    'type',
    'meeting_link',
    'meeting_password',
    'attachment_ids',
)


@dataclass(frozen=True)
class TransitionRule:
    allowed_from: frozenset
    lecturer_only: bool = False
    permission_message: str = ''
    state_message: str = ''


_ANY_STATUS = frozenset(AppointmentStatus)

TRANSITION_RULES = {
    AppointmentStatus.PENDING: TransitionRule(
        allowed_from=frozenset(),
        state_message='Appointments cannot be moved back to pending',
    ),
    AppointmentStatus.CONFIRMED: TransitionRule(
        allowed_from=frozenset({AppointmentStatus.PENDING}),
        lecturer_only=True,
        permission_message='Only lecturers can confirm appointments',
        state_message='Only pending appointments can be confirmed',
    ),
    AppointmentStatus.CANCELLED: TransitionRule(
        allowed_from=_ANY_STATUS - {AppointmentStatus.COMPLETED},
        state_message='Cannot cancel completed appointments',
    ),
    AppointmentStatus.COMPLETED: TransitionRule(
        allowed_from=frozenset({AppointmentStatus.CONFIRMED}),
        lecturer_only=True,
        permission_message='Only lecturers can mark appointments as completed',
        state_message='Only confirmed appointments can be marked as completed',
    ),
    AppointmentStatus.NO_SHOW: TransitionRule(
        allowed_from=_ANY_STATUS - {AppointmentStatus.COMPLETED},
        lecturer_only=True,
        permission_message='Only lecturers can mark appointments as no-show',
        state_message='Completed appointments cannot be marked as no-show',
    ),
    AppointmentStatus.RESCHEDULED: TransitionRule(allowed_from=_ANY_STATUS),
}


def validate_appointment_time(scheduled_at: datetime | None, duration_minutes: int | None, now: datetime) -> None:
    if scheduled_at is None:
        raise ValidationError('Scheduled time is required')
    if scheduled_at <= now:
        raise ValidationError('Cannot schedule appointments in the past')
    if duration_minutes is None or not 0 < duration_minutes <= config.MAX_APPOINTMENT_DURATION_MINUTES:
        raise ValidationError(
            f'Duration must be between 1 and {config.MAX_APPOINTMENT_DURATION_MINUTES} minutes'
        )


def validate_course_access(db: Session, course_id: int, student_id: int, lecturer_id: int) -> None:
    if not is_lecturer_of_course(db, course_id, lecturer_id) or not is_student_enrolled(db, course_id, student_id):
        raise ValidationError('Invalid course access for appointment participants')


def validate_recurrence(data: AppointmentCreateRequest) -> None:
    if data.recurring_pattern is None:
        raise ValidationError('A recurring pattern is required for recurring appointments')
    if data.recurring_end_date is None:
        raise ValidationError('A recurring end date is required for recurring appointments')
    if data.recurring_end_date <= data.scheduled_at:
        raise ValidationError('The recurring end date must be after the first appointment')


def _resolve_participants(db: Session, data: AppointmentCreateRequest, actor_id: int) -> tuple[int, int]:
    actor = get_user(db, actor_id)
    if actor.role == UserRole.STUDENT:
        if data.lecturer_id is None:
            raise ValidationError('Lecturer ID is required when student creates appointment')
        student_id, lecturer_id = actor_id, data.lecturer_id
    elif actor.role == UserRole.LECTURER:
        if data.student_id is None:
            raise ValidationError('Student ID is required when lecturer creates appointment')
        student_id, lecturer_id = data.student_id, actor_id
    else:
        raise PermissionDeniedError('Only students and lecturers can create appointments')

    require_role(db, student_id, UserRole.STUDENT)
    require_role(db, lecturer_id, UserRole.LECTURER)
    return student_id, lecturer_id


def create_appointment(db: Session, data: AppointmentCreateRequest, actor_id: int, clock: Clock) -> Appointment:
    logger.info('Creating appointment for user: %s', actor_id)

    student_id, lecturer_id = _resolve_participants(db, data, actor_id)
    now = clock.now()
    validate_appointment_time(data.scheduled_at, data.duration_minutes, now)
    if data.course_id is not None:
        validate_course_access(db, data.course_id, student_id, lecturer_id)
    if data.is_recurring:
        validate_recurrence(data)

    with participant_lock(db, student_id, lecturer_id):
        ensure_no_conflicts(db, student_id, lecturer_id, data.scheduled_at, data.duration_minutes)

        appointment = Appointment(
            student_id=student_id,
            lecturer_id=lecturer_id,
            subject=data.subject,
            description=data.description,
            scheduled_at=data.scheduled_at,
            duration_minutes=data.duration_minutes,
            location=data.location,
            type=data.type,
            status=AppointmentStatus.PENDING,
            course_id=data.course_id,
            meeting_link=data.meeting_link,
            meeting_password=data.meeting_password,
            attachment_ids=list(data.attachment_ids),
            is_recurring=data.is_recurring,
            recurring_pattern=data.recurring_pattern if data.is_recurring else None,
            recurring_end_date=data.recurring_end_date if data.is_recurring else None,
            booked_at=now,
            last_modified_at=now,
            last_modified_by=str(actor_id),
            created_at=now,
            updated_at=now,
        )
        db.add(appointment)
        db.flush()

        if appointment.is_series_root:
            expand_recurrence(
                db,
                appointment,
                data.recurring_pattern,
                data.recurring_end_date,
                actor=str(actor_id),
                clock=clock,
            )
        db.commit()

    db.refresh(appointment)
    logger.info('Appointment created successfully with ID: %s', appointment.id)
    return appointment


def get_participant_appointment(db: Session, appointment_id: int, actor_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError(f'Appointment not found: {appointment_id}')
    if not appointment.is_participant(actor_id):
        raise PermissionDeniedError('User is not a participant in this appointment')
    return appointment


def list_appointments(
    db: Session,
    actor_id: int,
    status: AppointmentStatus | None = None,
    appointment_type: AppointmentType | None = None,
    course_id: int | None = None,
) -> list[Appointment]:
    logger.info(
        'Getting appointments for user: %s with filters - status: %s, type: %s, courseId: %s',
        actor_id,
        status,
        appointment_type,
        course_id,
    )
    query = db.query(Appointment).filter(
        or_(Appointment.student_id == actor_id, Appointment.lecturer_id == actor_id)
    )
    if status is not None:
        query = query.filter(Appointment.status == status)
    if appointment_type is not None:
        query = query.filter(Appointment.type == appointment_type)
    if course_id is not None:
        query = query.filter(Appointment.course_id == course_id)
    return query.order_by(Appointment.scheduled_at.desc(), Appointment.id.desc()).all()


def _blocking_for_user(db: Session, actor_id: int):
    return db.query(Appointment).filter(
        or_(Appointment.student_id == actor_id, Appointment.lecturer_id == actor_id),
        Appointment.status.in_(list(BLOCKING_STATUSES)),
    )


def list_upcoming(db: Session, actor_id: int, clock: Clock) -> list[Appointment]:
    return _blocking_for_user(db, actor_id).filter(
        Appointment.scheduled_at >= clock.now()
    ).order_by(Appointment.scheduled_at.asc()).all()


def list_today(db: Session, actor_id: int, clock: Clock) -> list[Appointment]:
    start_of_day, end_of_day = day_bounds(clock.today())
    return _blocking_for_user(db, actor_id).filter(
        Appointment.scheduled_at >= start_of_day,
        Appointment.scheduled_at < end_of_day,
    ).order_by(Appointment.scheduled_at.asc()).all()


def appointment_stats(db: Session, actor_id: int, clock: Clock) -> dict:
    get_user(db, actor_id)
    return {
        'today': len(list_today(db, actor_id, clock)),
        'upcoming': len(list_upcoming(db, actor_id, clock)),
        'pending': len(list_appointments(db, actor_id, status=AppointmentStatus.PENDING)),
        'total': len(list_appointments(db, actor_id)),
    }


def update_appointment(
    db: Session,
    appointment_id: int,
    data: AppointmentUpdateRequest,
    actor_id: int,
    clock: Clock,
) -> Appointment:
    """Edit an appointment; a new time or duration is re-checked for conflicts.

    Only PENDING and CONFIRMED appointments can be moved. Notes belong to the
    lecturer.
    """
    logger.info('Updating appointment %s by user: %s', appointment_id, actor_id)
    appointment = get_participant_appointment(db, appointment_id, actor_id)
    is_lecturer = appointment.lecturer_id == actor_id
    now = clock.now()
    if data.notes is not None and not is_lecturer:
        raise PermissionDeniedError('Only lecturers can add notes')

    with participant_lock(db, appointment.student_id, appointment.lecturer_id):
        db.refresh(appointment)

        if data.scheduled_at is not None or data.duration_minutes is not None:
            if appointment.status not in RESCHEDULABLE_STATUSES:
                raise StateError(
                    f'{appointment.status.display_name} appointments cannot be rescheduled'
                )
            new_start = data.scheduled_at if data.scheduled_at is not None else appointment.scheduled_at
            new_duration = (
                data.duration_minutes if data.duration_minutes is not None else appointment.duration_minutes
            )
            validate_appointment_time(new_start, new_duration, now)
            ensure_no_conflicts(
                db,
                appointment.student_id,
                appointment.lecturer_id,
                new_start,
                new_duration,
                exclude_appointment_id=appointment.id,
            )
            appointment.scheduled_at = new_start
            appointment.duration_minutes = new_duration

        for field in EDITABLE_FIELDS:
            value = getattr(data, field)
            if value is not None:
                setattr(appointment, field, value)

        if data.notes is not None:
            appointment.notes = data.notes

        appointment.touch(now, str(actor_id))
        db.commit()

    db.refresh(appointment)
    logger.info('Appointment %s updated successfully', appointment_id)
    return appointment


def update_status(
    db: Session,
    appointment_id: int,
    new_status: AppointmentStatus,
    actor_id: int,
    clock: Clock,
    notes: str | None = None,
) -> Appointment:
    logger.info('Updating appointment %s status to %s by user: %s', appointment_id, new_status, actor_id)
    appointment = get_participant_appointment(db, appointment_id, actor_id)
    is_lecturer = appointment.lecturer_id == actor_id
    rule = TRANSITION_RULES[new_status]

    if rule.lecturer_only and not is_lecturer:
        raise PermissionDeniedError(rule.permission_message)
    if notes is not None and not is_lecturer:
        raise PermissionDeniedError('Only lecturers can add notes')

    with participant_lock(db, appointment.student_id, appointment.lecturer_id):
        db.refresh(appointment)
        if appointment.status not in rule.allowed_from:
            raise StateError(rule.state_message or f'Cannot change status to {new_status.value}')

        # Re-entering a blocking status claims the interval again
        if new_status.is_blocking and not appointment.status.is_blocking:
            ensure_no_conflicts(
                db,
                appointment.student_id,
                appointment.lecturer_id,
                appointment.scheduled_at,
                appointment.duration_minutes,
                exclude_appointment_id=appointment.id,
            )

        appointment.status = new_status
        if notes is not None:
            appointment.notes = notes
        appointment.touch(clock.now(), str(actor_id))
        db.commit()

    db.refresh(appointment)
    logger.info('Appointment %s status updated to %s', appointment_id, new_status)
    return appointment


def delete_appointment(db: Session, appointment_id: int, actor_id: int) -> None:
    """Delete a PENDING appointment, and the whole series when it is a root."""
    logger.info('Deleting appointment %s by user: %s', appointment_id, actor_id)
    appointment = get_participant_appointment(db, appointment_id, actor_id)

    with participant_lock(db, appointment.student_id, appointment.lecturer_id):
        db.refresh(appointment)
        if appointment.status != AppointmentStatus.PENDING:
            raise StateError('Only pending appointments can be deleted')

        if appointment.is_series_root:
            instances = db.query(Appointment).filter(
                Appointment.parent_appointment_id == appointment.id
            ).all()
            for instance in instances:
                db.delete(instance)
            # Children go first so the parent reference never dangles
            db.flush()
            logger.info('Deleted %s recurring instances for appointment %s', len(instances), appointment_id)

        db.delete(appointment)
        db.commit()

    logger.info('Appointment %s deleted successfully', appointment_id)


def auto_complete_expired(db: Session, clock: Clock) -> int:
    """Mark CONFIRMED appointments that ended more than the grace period ago as COMPLETED."""
    now = clock.now()
    cutoff = now - timedelta(hours=config.AUTO_COMPLETE_GRACE_HOURS)

    candidates = db.query(Appointment).filter(
        Appointment.status == AppointmentStatus.CONFIRMED,
        Appointment.scheduled_at < cutoff,
    ).all()

    completed = 0
    for appointment in candidates:
        if appointment.end_time >= cutoff:
            continue
        appointment.status = AppointmentStatus.COMPLETED
        note = f'Auto-completed by system at {now:%Y-%m-%d %H:%M}'
        appointment.notes = f'{appointment.notes} | {note}' if appointment.notes else note
        appointment.touch(now, SYSTEM_AUTO_COMPLETE)
        completed += 1

    db.commit()
    if completed:
        logger.info('Auto-completed %s expired appointments', completed)
    else:
        logger.debug('No expired appointments found to auto-complete')
    return completed
