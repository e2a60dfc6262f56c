"""Availability rule store: lecturer-owned create, edit, toggle and delete."""

import logging
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from backend.core import config
from backend.models.availability import AvailabilityRule
from backend.models.enums import AvailabilityType, UserRole
from backend.schemas.availability import AvailabilityRuleRequest, AvailabilityRuleUpdateRequest
from backend.scheduling.clock import Clock
from backend.scheduling.directory import require_role
from backend.scheduling.errors import NotFoundError, PermissionDeniedError, ValidationError
from backend.scheduling.slots import generated_slots_for_date, iterate_windows

logger = logging.getLogger(__name__)


def validate_rule(rule: AvailabilityRule) -> None:
    """Check the time window and the date/recurring exclusivity of a rule."""
    if rule.start_time is None or rule.end_time is None:
        raise ValidationError('Start time and end time are required')
    if rule.start_time >= rule.end_time:
        raise ValidationError('Start time must be before end time')
    if rule.slot_duration_minutes is not None and rule.slot_duration_minutes <= 0:
        raise ValidationError('Slot duration must be a positive number of minutes')

    if rule.is_recurring:
        if rule.day_of_week is None:
            raise ValidationError('Day of week is required for recurring slots')
        if rule.date is not None:
            raise ValidationError('Cannot set specific date for recurring slots')
        if (
            rule.recurring_start_date is not None
            and rule.recurring_end_date is not None
            and rule.recurring_end_date < rule.recurring_start_date
        ):
            raise ValidationError('Recurring end date must not be before the start date')
    else:
        if rule.date is None:
            raise ValidationError('Date is required for non-recurring slots')
        if rule.day_of_week is not None:
            raise ValidationError('Cannot set day of week for non-recurring slots')
        if rule.recurring_start_date is not None or rule.recurring_end_date is not None:
            raise ValidationError('Recurring date range is only allowed on recurring slots')


def total_slots(rule: AvailabilityRule) -> int:
    if rule.start_time is None or rule.end_time is None or not rule.slot_duration_minutes:
        return 0
    # Any date works, only the time of day matters
    start = datetime.combine(date.min, rule.start_time)
    end = datetime.combine(date.min, rule.end_time)
    return sum(1 for _ in iterate_windows(start, end, rule.slot_duration_minutes, rule.slot_duration_minutes))


def _build_rule(data: AvailabilityRuleRequest, lecturer_id: int, clock: Clock) -> AvailabilityRule:
    now = clock.now()
    rule = AvailabilityRule(
        lecturer_id=lecturer_id,
        date=data.date,
        day_of_week=data.day_of_week,
        is_recurring=data.is_recurring,
        recurring_start_date=data.recurring_start_date,
        recurring_end_date=data.recurring_end_date,
        start_time=data.start_time,
        end_time=data.end_time,
        slot_duration_minutes=data.slot_duration_minutes,
        location=data.location,
        allowed_type=data.allowed_type,
        availability_type=data.availability_type,
        description=data.description,
        is_active=data.is_active,
        created_at=now,
        updated_at=now,
    )
    if rule.is_recurring and rule.recurring_start_date is None:
        rule.recurring_start_date = clock.today()
    validate_rule(rule)
    return rule


def create_rule(db: Session, data: AvailabilityRuleRequest, lecturer_id: int, clock: Clock) -> AvailabilityRule:
    logger.info('Creating availability rule for lecturer: %s', lecturer_id)
    require_role(db, lecturer_id, UserRole.LECTURER)

    rule = _build_rule(data, lecturer_id, clock)
    db.add(rule)
    db.commit()
    db.refresh(rule)

    logger.info('Availability rule created with ID: %s', rule.id)
    return rule


def bulk_create_rules(
    db: Session,
    requests: list[AvailabilityRuleRequest],
    lecturer_id: int,
    clock: Clock,
) -> list[AvailabilityRule]:
    """Create every rule or none of them."""
    logger.info('Creating %s availability rules for lecturer: %s', len(requests), lecturer_id)
    require_role(db, lecturer_id, UserRole.LECTURER)

    rules: list[AvailabilityRule] = []
    errors: list[str] = []
    for index, data in enumerate(requests):
        try:
            rules.append(_build_rule(data, lecturer_id, clock))
        except ValidationError as exc:
            errors.append(f'Slot {index + 1}: {exc.message}')

    if errors:
        raise ValidationError('Some slots failed to create: ' + '; '.join(errors), details={'errors': errors})

    db.add_all(rules)
    db.commit()
    for rule in rules:
        db.refresh(rule)
    return rules


def get_owned_rule(db: Session, rule_id: int, lecturer_id: int) -> AvailabilityRule:
    rule = db.get(AvailabilityRule, rule_id)
    if rule is None:
        raise NotFoundError(f'Availability slot not found: {rule_id}')
    if rule.lecturer_id != lecturer_id:
        raise PermissionDeniedError('You can only modify your own availability slots')
    return rule


def list_rules(
    db: Session,
    lecturer_id: int,
    active_only: bool = False,
    availability_type: AvailabilityType | None = None,
) -> list[AvailabilityRule]:
    query = db.query(AvailabilityRule).filter(AvailabilityRule.lecturer_id == lecturer_id)
    if active_only:
        query = query.filter(AvailabilityRule.is_active.is_(True))
    if availability_type is not None:
        query = query.filter(AvailabilityRule.availability_type == availability_type)
    return query.order_by(
        AvailabilityRule.date.asc(),
        AvailabilityRule.start_time.asc(),
        AvailabilityRule.id.asc(),
    ).all()


def update_rule(
    db: Session,
    rule_id: int,
    data: AvailabilityRuleUpdateRequest,
    lecturer_id: int,
    clock: Clock,
) -> AvailabilityRule:
    logger.info('Updating availability rule %s by lecturer: %s', rule_id, lecturer_id)
    rule = get_owned_rule(db, rule_id, lecturer_id)
    changes = data.model_dump(exclude_unset=True)
    if changes.get('date') is not None and changes.get('day_of_week') is not None:
        raise ValidationError('Set either a specific date or a day of week, not both')

    try:
        # A date turns the rule into a one-off, a weekday into a recurring rule
        if changes.get('date') is not None:
            rule.date = changes.pop('date')
            rule.is_recurring = False
            rule.day_of_week = None
            rule.recurring_start_date = None
            rule.recurring_end_date = None
            changes.pop('recurring_start_date', None)
            changes.pop('recurring_end_date', None)
        elif changes.get('day_of_week') is not None:
            rule.day_of_week = changes.pop('day_of_week')
            rule.is_recurring = True
            rule.date = None
            if rule.recurring_start_date is None and changes.get('recurring_start_date') is None:
                rule.recurring_start_date = clock.today()

        for field in (
            'recurring_start_date',
            'recurring_end_date',
            'start_time',
            'end_time',
            'slot_duration_minutes',
            'location',
            'allowed_type',
            'availability_type',
            'description',
            'is_active',
        ):
            if changes.get(field) is not None:
                setattr(rule, field, changes[field])

        validate_rule(rule)
        rule.updated_at = clock.now()
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(rule)
    logger.info('Availability rule %s updated', rule_id)
    return rule


def toggle_rule(db: Session, rule_id: int, lecturer_id: int, clock: Clock) -> AvailabilityRule:
    rule = get_owned_rule(db, rule_id, lecturer_id)
    rule.is_active = not rule.is_active
    rule.updated_at = clock.now()
    db.commit()
    db.refresh(rule)
    logger.info('Availability rule %s toggled to %s', rule_id, 'active' if rule.is_active else 'inactive')
    return rule


def delete_rule(db: Session, rule_id: int, lecturer_id: int) -> None:
    """Delete a rule. Appointments booked in its slots are left untouched."""
    rule = get_owned_rule(db, rule_id, lecturer_id)
    db.delete(rule)
    db.commit()
    logger.info('Availability rule %s deleted', rule_id)


def bulk_delete_rules(db: Session, rule_ids: list[int], lecturer_id: int) -> None:
    errors: list[str] = []
    rules: list[AvailabilityRule] = []
    for rule_id in rule_ids:
        try:
            rules.append(get_owned_rule(db, rule_id, lecturer_id))
        except (NotFoundError, PermissionDeniedError) as exc:
            errors.append(f'Slot {rule_id}: {exc.message}')

    if errors:
        raise ValidationError('Some slots failed to delete: ' + '; '.join(errors), details={'errors': errors})

    for rule in rules:
        db.delete(rule)
    db.commit()
    logger.info('Deleted %s availability rules for lecturer %s', len(rules), lecturer_id)


def availability_stats(db: Session, lecturer_id: int, clock: Clock) -> dict:
    require_role(db, lecturer_id, UserRole.LECTURER)
    today = clock.today()

    active_rules = list_rules(db, lecturer_id, active_only=True)
    recurring = [rule for rule in active_rules if rule.is_recurring]
    one_time = [rule for rule in active_rules if not rule.is_recurring and rule.date is not None and rule.date >= today]

    available = 0
    for offset in range(config.AVAILABILITY_STATS_DAYS):
        day_slots = generated_slots_for_date(db, lecturer_id, today + timedelta(days=offset))
        available += sum(1 for slot in day_slots if slot.is_available)

    return {
        'total': len(active_rules),
        'recurring': len(recurring),
        'one_time': len(one_time),
        'available_next_days': available,
    }
