"""Double-booking detection over half-open ``[start, end)`` intervals."""

import logging
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.core import config
from backend.models.appointment import Appointment
from backend.models.enums import BLOCKING_STATUSES
from backend.scheduling.errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)


def intervals_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    return start < other_end and other_start < end


def blocking_appointments(
    db: Session,
    participant_id: int,
    range_start: datetime,
    range_end: datetime,
    exclude_appointment_id: int | None = None,
) -> list[Appointment]:
    """Blocking appointments of a participant that overlap ``[range_start, range_end)``.

    The query is bounded on ``scheduled_at`` only; appointments never last
    longer than the configured maximum, which gives the look-behind window.
    """
    look_behind = range_start - timedelta(minutes=config.MAX_APPOINTMENT_DURATION_MINUTES)
    query = db.query(Appointment).filter(
        or_(Appointment.student_id == participant_id, Appointment.lecturer_id == participant_id),
        Appointment.status.in_(list(BLOCKING_STATUSES)),
        Appointment.scheduled_at < range_end,
        Appointment.scheduled_at > look_behind,
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)

    return [
        appointment
        for appointment in query.order_by(Appointment.scheduled_at.asc()).all()
        if intervals_overlap(range_start, range_end, appointment.scheduled_at, appointment.end_time)
    ]


def has_conflict(
    db: Session,
    participant_id: int,
    start: datetime,
    end: datetime,
    exclude_appointment_id: int | None = None,
) -> bool:
    return bool(blocking_appointments(db, participant_id, start, end, exclude_appointment_id))


def ensure_no_conflicts(
    db: Session,
    student_id: int,
    lecturer_id: int,
    scheduled_at: datetime,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
) -> None:
    """Raise ``ConflictError`` naming the first participant that is double booked.

    The lecturer is checked before the student.
    """
    if duration_minutes is None or duration_minutes <= 0:
        raise ValidationError('Duration must be a positive number of minutes')

    end = scheduled_at + timedelta(minutes=duration_minutes)
    for party, participant_id in (('lecturer', lecturer_id), ('student', student_id)):
        conflicts = blocking_appointments(db, participant_id, scheduled_at, end, exclude_appointment_id)
        if conflicts:
            logger.info(
                'Conflict for %s %s between %s and %s: %s',
                party,
                participant_id,
                scheduled_at,
                end,
                [appointment.id for appointment in conflicts],
            )
            raise ConflictError(party, [appointment.id for appointment in conflicts])
