from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user
from backend.database import get_db
from backend.models.availability import AvailabilityRule
from backend.models.enums import AvailabilityType
from backend.models.user import User
from backend.routes.common import ensure_database_ready, require_lecturer, scheduling_errors
from backend.schemas.availability import (
    AvailabilityRuleRequest,
    AvailabilityRuleResponse,
    AvailabilityRuleUpdateRequest,
    AvailabilityStatsResponse,
    BulkRuleDeleteRequest,
    GeneratedTimeSlotResponse,
)
from backend.scheduling import rules, slots
from backend.scheduling.clock import Clock, get_clock

router = APIRouter(tags=['availability'])


def _to_response(rule: AvailabilityRule) -> AvailabilityRuleResponse:
    return AvailabilityRuleResponse(
        id=rule.id,
        lecturer_id=rule.lecturer_id,
        date=rule.date,
        day_of_week=rule.day_of_week,
        is_recurring=bool(rule.is_recurring),
        recurring_start_date=rule.recurring_start_date,
        recurring_end_date=rule.recurring_end_date,
        start_time=rule.start_time,
        end_time=rule.end_time,
        slot_duration_minutes=rule.slot_duration_minutes,
        location=rule.location,
        allowed_type=rule.allowed_type,
        availability_type=rule.availability_type or AvailabilityType.OPEN,
        description=rule.description,
        is_active=bool(rule.is_active),
        display_name=rule.display_name,
        time_range=rule.time_range,
        total_slots=rules.total_slots(rule),
        created_at=rule.created_at,
        updated_at=rule.updated_at,
    )


@router.post('/rules', response_model=AvailabilityRuleResponse, status_code=status.HTTP_201_CREATED)
def create_availability_rule(
    data: AvailabilityRuleRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    require_lecturer(current_user)
    ensure_database_ready()

    with scheduling_errors(db):
        return _to_response(rules.create_rule(db, data, current_user.id, clock))


@router.post('/rules/bulk', response_model=list[AvailabilityRuleResponse], status_code=status.HTTP_201_CREATED)
def create_availability_rules(
    data: list[AvailabilityRuleRequest],
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    require_lecturer(current_user)
    ensure_database_ready()

    with scheduling_errors(db):
        return [_to_response(rule) for rule in rules.bulk_create_rules(db, data, current_user.id, clock)]


@router.delete('/rules/bulk', status_code=status.HTTP_204_NO_CONTENT)
def delete_availability_rules(
    data: BulkRuleDeleteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_lecturer(current_user)
    ensure_database_ready()

    with scheduling_errors(db):
        rules.bulk_delete_rules(db, data.rule_ids, current_user.id)


@router.get('/rules', response_model=list[AvailabilityRuleResponse])
def list_availability_rules(
    lecturer_id: int | None = Query(None),
    active_only: bool = Query(False),
    availability_type: AvailabilityType | None = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    # Other lecturers' calendars only expose what is currently published
    owner_id = lecturer_id if lecturer_id is not None else current_user.id
    if owner_id != current_user.id:
        active_only = True

    with scheduling_errors(db):
        found = rules.list_rules(db, owner_id, active_only=active_only, availability_type=availability_type)
        return [_to_response(rule) for rule in found]


@router.put('/rules/{rule_id}', response_model=AvailabilityRuleResponse)
def update_availability_rule(
    rule_id: int,
    data: AvailabilityRuleUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    require_lecturer(current_user)
    ensure_database_ready()

    with scheduling_errors(db):
        return _to_response(rules.update_rule(db, rule_id, data, current_user.id, clock))


@router.put('/rules/{rule_id}/toggle', response_model=AvailabilityRuleResponse)
def toggle_availability_rule(
    rule_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    require_lecturer(current_user)
    ensure_database_ready()

    with scheduling_errors(db):
        return _to_response(rules.toggle_rule(db, rule_id, current_user.id, clock))


@router.delete('/rules/{rule_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_availability_rule(
    rule_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_lecturer(current_user)
    ensure_database_ready()

    with scheduling_errors(db):
        rules.delete_rule(db, rule_id, current_user.id)


@router.get('/stats', response_model=AvailabilityStatsResponse)
def get_availability_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    require_lecturer(current_user)
    ensure_database_ready()

    with scheduling_errors(db):
        return AvailabilityStatsResponse(**rules.availability_stats(db, current_user.id, clock))


@router.get('/generated-slots', response_model=list[GeneratedTimeSlotResponse])
def list_generated_slots(
    lecturer_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors(db):
        generated = slots.generated_slots_for_date(db, lecturer_id, slot_date)
        return [GeneratedTimeSlotResponse.model_validate(slot) for slot in generated]
