"""Expansion of a recurring series root into its future instances."""

import logging
from datetime import datetime
from typing import Iterator

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from backend.core import config
from backend.models.appointment import Appointment
from backend.models.enums import AppointmentStatus, RecurringPattern
from backend.scheduling.clock import Clock
from backend.scheduling.conflicts import ensure_no_conflicts
from backend.scheduling.errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)

PATTERN_STEPS = {
    RecurringPattern.WEEKLY: relativedelta(weeks=1),
    RecurringPattern.BIWEEKLY: relativedelta(weeks=2),
    RecurringPattern.MONTHLY: relativedelta(months=1),
}


def occurrences(start: datetime, pattern: RecurringPattern, end_exclusive: datetime) -> Iterator[datetime]:
    """Occurrences after ``start`` that fall strictly before ``end_exclusive``.

    Each occurrence is computed from ``start`` so monthly series keep their day
    of month (Jan 31 -> Feb 28 -> Mar 31).
    """
    step = PATTERN_STEPS.get(pattern)
    if step is None:
        raise ValidationError(f'Unsupported recurring pattern: {pattern}')

    index = 1
    while True:
        candidate = start + step * index
        if candidate >= end_exclusive:
            return
        yield candidate
        index += 1


def expand_recurrence(
    db: Session,
    root: Appointment,
    pattern: RecurringPattern,
    end_exclusive: datetime,
    actor: str,
    clock: Clock,
) -> list[Appointment]:
    """Create the conflict-free instances of a persisted series root.

    An occurrence that collides with either participant is skipped on its
    own; any other error aborts the whole expansion. Must run inside the
    participant lock held for the root's creation. Instances are flushed, the
    caller commits.
    """
    if root.id is None:
        raise ValidationError('The series root must be saved before it can be expanded')
    if root.scheduled_at is None or end_exclusive is None:
        raise ValidationError('A recurring series needs a start and an end date')
    if not root.duration_minutes or not 0 < root.duration_minutes <= config.MAX_APPOINTMENT_DURATION_MINUTES:
        raise ValidationError(
            f'Duration must be between 1 and {config.MAX_APPOINTMENT_DURATION_MINUTES} minutes'
        )

    logger.info('Creating recurring instances for appointment %s', root.id)
    now = clock.now()
    instances: list[Appointment] = []

    for scheduled_at in occurrences(root.scheduled_at, pattern, end_exclusive):
        try:
            ensure_no_conflicts(db, root.student_id, root.lecturer_id, scheduled_at, root.duration_minutes)
        except ConflictError as exc:
            logger.warning('Skipping recurring instance at %s due to conflict: %s', scheduled_at, exc.message)
            continue

        instance = Appointment(
            student_id=root.student_id,
            lecturer_id=root.lecturer_id,
            subject=root.subject,
            description=root.description,
            scheduled_at=scheduled_at,
            duration_minutes=root.duration_minutes,
            location=root.location,
            type=root.type,
            status=AppointmentStatus.PENDING,
            course_id=root.course_id,
            meeting_link=root.meeting_link,
            meeting_password=root.meeting_password,
            is_recurring=False,
            parent_appointment_id=root.id,
            attachment_ids=[],
            booked_at=now,
            last_modified_at=now,
            last_modified_by=actor,
            created_at=now,
            updated_at=now,
        )
        db.add(instance)
        # Later occurrences must see this one in their conflict lookups
        db.flush()
        instances.append(instance)

    logger.info('Created %s recurring instances for appointment %s', len(instances), root.id)
    return instances
