"""Slot generation: availability rules expanded into bookable time windows.

Slots are computed on demand and never stored. A slot id is derived from the
rule id, the date and the start time, so generating the same rule for the same
date twice yields the same ids.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.core import config
from backend.models.appointment import Appointment
from backend.models.availability import AvailabilityRule
from backend.models.enums import AppointmentType, DayOfWeek, UserRole
from backend.scheduling.clock import Clock
from backend.scheduling.conflicts import blocking_appointments, intervals_overlap
from backend.scheduling.directory import require_role
from backend.scheduling.errors import ValidationError

logger = logging.getLogger(__name__)

UNKNOWN_STUDENT_NAME = 'Unknown Student'


@dataclass
class TimeSlot:
    slot_id: str
    availability_id: Optional[int]
    date: date
    start_time: time
    end_time: time
    start_datetime: datetime
    end_datetime: datetime
    duration_minutes: int
    location: Optional[str]
    type: AppointmentType
    is_available: bool = True
    is_blocked: bool = False
    appointment_id: Optional[int] = None
    appointment_status: Optional[str] = None
    student_name: Optional[str] = None

    @property
    def is_booked(self) -> bool:
        return self.appointment_id is not None


def slot_id_for(rule_id: Optional[int], slot_date: date, start: time) -> str:
    prefix = f'{rule_id}-' if rule_id is not None else ''
    return f'{prefix}{slot_date.isoformat()}-{start.strftime("%H:%M")}'


def parse_clock_time(value: str) -> time:
    try:
        return time.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f'Invalid time of day: {value!r}') from exc


def is_active_on(rule: AvailabilityRule, check_date: date) -> bool:
    if not rule.is_active:
        return False

    if rule.is_recurring:
        if rule.day_of_week is None or rule.day_of_week != DayOfWeek.of(check_date):
            return False
        if rule.recurring_start_date is not None and check_date < rule.recurring_start_date:
            return False
        if rule.recurring_end_date is not None and check_date > rule.recurring_end_date:
            return False
        return True

    return rule.date is not None and rule.date == check_date


def iterate_windows(
    window_start: datetime,
    window_end: datetime,
    step_minutes: int,
    length_minutes: int,
) -> Iterable[tuple[datetime, datetime]]:
    """Yield ``length``-long windows starting every ``step`` minutes inside the bounds.

    A window that would run past ``window_end`` is dropped.
    """
    step = timedelta(minutes=step_minutes)
    length = timedelta(minutes=length_minutes)
    current = window_start
    while current + length <= window_end:
        yield current, current + length
        current += step


def generate_slots(rule: AvailabilityRule, slot_date: date) -> list[TimeSlot]:
    if not is_active_on(rule, slot_date):
        return []
    if rule.start_time is None or rule.end_time is None or not rule.slot_duration_minutes:
        return []

    window_start = datetime.combine(slot_date, rule.start_time)
    window_end = datetime.combine(slot_date, rule.end_time)
    slot_type = rule.allowed_type or AppointmentType.OFFICE_HOURS
    bookable = rule.availability_type is None or rule.availability_type.is_bookable

    return [
        TimeSlot(
            slot_id=slot_id_for(rule.id, slot_date, start.time()),
            availability_id=rule.id,
            date=slot_date,
            start_time=start.time(),
            end_time=end.time(),
            start_datetime=start,
            end_datetime=end,
            duration_minutes=rule.slot_duration_minutes,
            location=rule.location,
            type=slot_type,
            is_available=bookable,
            is_blocked=not bookable,
        )
        for start, end in iterate_windows(
            window_start, window_end, rule.slot_duration_minutes, rule.slot_duration_minutes
        )
    ]


def overlay_bookings(slots: list[TimeSlot], appointments: list[Appointment]) -> list[TimeSlot]:
    """Mark every slot overlapping one of ``appointments`` as booked.

    ``appointments`` are expected to be the lecturer's blocking appointments;
    the first overlapping one is attached to the slot.
    """
    for slot in slots:
        for appointment in appointments:
            if intervals_overlap(slot.start_datetime, slot.end_datetime, appointment.scheduled_at, appointment.end_time):
                slot.is_available = False
                slot.appointment_id = appointment.id
                slot.appointment_status = appointment.status.value
                slot.student_name = appointment.student.display_name if appointment.student else UNKNOWN_STUDENT_NAME
                break
    return slots


def overlay_blocked_windows(slots: list[TimeSlot], rules: list[AvailabilityRule], slot_date: date) -> list[TimeSlot]:
    """Mark bookable slots that fall inside a BLOCKED rule window as blocked."""
    blocked_windows = [
        (datetime.combine(slot_date, rule.start_time), datetime.combine(slot_date, rule.end_time))
        for rule in rules
        if rule.availability_type is not None
        and not rule.availability_type.is_bookable
        and rule.start_time is not None
        and rule.end_time is not None
        and is_active_on(rule, slot_date)
    ]
    for slot in slots:
        if slot.is_blocked:
            continue
        if any(
            intervals_overlap(slot.start_datetime, slot.end_datetime, blocked_start, blocked_end)
            for blocked_start, blocked_end in blocked_windows
        ):
            slot.is_blocked = True
            slot.is_available = False
    return slots


def rules_for_date(db: Session, lecturer_id: int, slot_date: date) -> list[AvailabilityRule]:
    candidates = db.query(AvailabilityRule).filter(
        AvailabilityRule.lecturer_id == lecturer_id,
        AvailabilityRule.is_active.is_(True),
        or_(
            AvailabilityRule.date == slot_date,
            AvailabilityRule.day_of_week == DayOfWeek.of(slot_date),
        ),
    ).order_by(AvailabilityRule.start_time.asc(), AvailabilityRule.id.asc()).all()
    return [rule for rule in candidates if is_active_on(rule, slot_date)]


def day_bounds(slot_date: date) -> tuple[datetime, datetime]:
    start_of_day = datetime.combine(slot_date, time.min)
    return start_of_day, start_of_day + timedelta(days=1)


def generated_slots_for_date(db: Session, lecturer_id: int, slot_date: date) -> list[TimeSlot]:
    """Every slot the lecturer's rules produce on ``slot_date``, booked or free."""
    require_role(db, lecturer_id, UserRole.LECTURER)

    rules = rules_for_date(db, lecturer_id, slot_date)
    slots: list[TimeSlot] = []
    for rule in rules:
        slots.extend(generate_slots(rule, slot_date))

    overlay_blocked_windows(slots, rules, slot_date)
    day_start, day_end = day_bounds(slot_date)
    overlay_bookings(slots, blocking_appointments(db, lecturer_id, day_start, day_end))

    slots.sort(key=lambda slot: (slot.start_datetime, slot.slot_id))
    logger.info('Generated %s time slots for lecturer %s on %s', len(slots), lecturer_id, slot_date)
    return slots


def _default_office_window(slot_date: date) -> tuple[datetime, datetime]:
    return (
        datetime.combine(slot_date, parse_clock_time(config.DEFAULT_DAY_START)),
        datetime.combine(slot_date, parse_clock_time(config.DEFAULT_DAY_END)),
    )


def available_slots(
    db: Session,
    lecturer_id: int,
    slot_date: date,
    duration_minutes: int,
    clock: Clock,
) -> list[TimeSlot]:
    """Free start times of ``duration_minutes`` for booking UIs.

    Candidates step through each bookable rule window by the rule's slot
    length. Lecturers that have never published a rule fall back to the default
    office window in fixed steps.
    """
    if duration_minutes <= 0 or duration_minutes > config.MAX_APPOINTMENT_DURATION_MINUTES:
        raise ValidationError(
            f'Duration must be between 1 and {config.MAX_APPOINTMENT_DURATION_MINUTES} minutes'
        )
    require_role(db, lecturer_id, UserRole.LECTURER)

    rules = rules_for_date(db, lecturer_id, slot_date)
    has_any_rule = bool(rules) or db.query(AvailabilityRule.id).filter(
        AvailabilityRule.lecturer_id == lecturer_id
    ).first() is not None

    windows: list[tuple[Optional[int], datetime, datetime, int, Optional[str], AppointmentType]] = []
    if has_any_rule:
        for rule in rules:
            if rule.availability_type is not None and not rule.availability_type.is_bookable:
                continue
            if rule.start_time is None or rule.end_time is None or not rule.slot_duration_minutes:
                continue
            windows.append((
                rule.id,
                datetime.combine(slot_date, rule.start_time),
                datetime.combine(slot_date, rule.end_time),
                rule.slot_duration_minutes,
                rule.location,
                rule.allowed_type or AppointmentType.OFFICE_HOURS,
            ))
    else:
        office_start, office_end = _default_office_window(slot_date)
        windows.append((
            None,
            office_start,
            office_end,
            config.DEFAULT_SLOT_DURATION_MINUTES,
            config.DEFAULT_SLOT_LOCATION,
            AppointmentType.OFFICE_HOURS,
        ))

    candidates: list[TimeSlot] = []
    for rule_id, window_start, window_end, step_minutes, location, slot_type in windows:
        for start, end in iterate_windows(window_start, window_end, step_minutes, duration_minutes):
            candidates.append(TimeSlot(
                slot_id=slot_id_for(rule_id, slot_date, start.time()),
                availability_id=rule_id,
                date=slot_date,
                start_time=start.time(),
                end_time=end.time(),
                start_datetime=start,
                end_datetime=end,
                duration_minutes=duration_minutes,
                location=location,
                type=slot_type,
            ))

    overlay_blocked_windows(candidates, rules, slot_date)
    day_start, day_end = day_bounds(slot_date)
    overlay_bookings(candidates, blocking_appointments(db, lecturer_id, day_start, day_end))

    now = clock.now()
    free = [slot for slot in candidates if slot.is_available and slot.start_datetime > now]

    seen: set[datetime] = set()
    unique: list[TimeSlot] = []
    for slot in sorted(free, key=lambda item: (item.start_datetime, item.slot_id)):
        if slot.start_datetime in seen:
            continue
        seen.add(slot.start_datetime)
        unique.append(slot)

    logger.info(
        'Found %s available %s-minute slots for lecturer %s on %s',
        len(unique),
        duration_minutes,
        lecturer_id,
        slot_date,
    )
    return unique
