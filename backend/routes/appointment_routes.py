from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_admin
from backend.core import config
from backend.database import get_db
from backend.models.appointment import Appointment
from backend.models.enums import AppointmentStatus, AppointmentType
from backend.models.user import User
from backend.routes.common import ensure_database_ready, scheduling_errors
from backend.schemas.appointment import (
    AppointmentCreateRequest,
    AppointmentResponse,
    AppointmentStatsResponse,
    AppointmentStatusUpdateRequest,
    AppointmentUpdateRequest,
    AutoCompleteResponse,
)
from backend.schemas.availability import GeneratedTimeSlotResponse
from backend.scheduling import lifecycle, slots
from backend.scheduling.clock import Clock, get_clock

router = APIRouter(tags=['appointments'])


def _to_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        student_id=appointment.student_id,
        lecturer_id=appointment.lecturer_id,
        student_name=appointment.student.display_name if appointment.student else None,
        lecturer_name=appointment.lecturer.display_name if appointment.lecturer else None,
        subject=appointment.subject,
        description=appointment.description,
        scheduled_at=appointment.scheduled_at,
        end_time=appointment.end_time,
        duration_minutes=appointment.duration_minutes,
        location=appointment.location,
        type=appointment.type,
        type_display_name=appointment.type.display_name,
        status=appointment.status,
        status_display_name=appointment.status.display_name,
        meeting_link=appointment.meeting_link,
        notes=appointment.notes,
        course_id=appointment.course_id,
        course_name=appointment.course.name if appointment.course else None,
        booked_at=appointment.booked_at,
        last_modified_at=appointment.last_modified_at,
        last_modified_by=appointment.last_modified_by,
        is_recurring=bool(appointment.is_recurring),
        recurring_pattern=appointment.recurring_pattern,
        recurring_end_date=appointment.recurring_end_date,
        parent_appointment_id=appointment.parent_appointment_id,
        attachment_ids=list(appointment.attachment_ids or []),
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: AppointmentCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    with scheduling_errors(db):
        appointment = lifecycle.create_appointment(db, data, current_user.id, clock)
        return _to_response(appointment)


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    status_filter: AppointmentStatus | None = Query(None, alias='status'),
    type_filter: AppointmentType | None = Query(None, alias='type'),
    course_id: int | None = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors(db):
        appointments = lifecycle.list_appointments(
            db,
            current_user.id,
            status=status_filter,
            appointment_type=type_filter,
            course_id=course_id,
        )
        return [_to_response(appointment) for appointment in appointments]


@router.get('/upcoming', response_model=list[AppointmentResponse])
def list_upcoming_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    with scheduling_errors(db):
        return [_to_response(appointment) for appointment in lifecycle.list_upcoming(db, current_user.id, clock)]


@router.get('/today', response_model=list[AppointmentResponse])
def list_today_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    with scheduling_errors(db):
        return [_to_response(appointment) for appointment in lifecycle.list_today(db, current_user.id, clock)]


@router.get('/stats', response_model=AppointmentStatsResponse)
def get_appointment_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    with scheduling_errors(db):
        return AppointmentStatsResponse(**lifecycle.appointment_stats(db, current_user.id, clock))


@router.get('/available-slots', response_model=list[GeneratedTimeSlotResponse])
def list_available_slots(
    lecturer_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    duration_minutes: int = Query(config.DEFAULT_SLOT_DURATION_MINUTES),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    with scheduling_errors(db):
        free_slots = slots.available_slots(db, lecturer_id, slot_date, duration_minutes, clock)
        return [GeneratedTimeSlotResponse.model_validate(slot) for slot in free_slots]


@router.post('/maintenance/auto-complete', response_model=AutoCompleteResponse)
def auto_complete_appointments(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    with scheduling_errors(db):
        return AutoCompleteResponse(completed=lifecycle.auto_complete_expired(db, clock))


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors(db):
        return _to_response(lifecycle.get_participant_appointment(db, appointment_id, current_user.id))


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: AppointmentUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    with scheduling_errors(db):
        appointment = lifecycle.update_appointment(db, appointment_id, data, current_user.id, clock)
        return _to_response(appointment)


@router.put('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: AppointmentStatusUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    ensure_database_ready()

    with scheduling_errors(db):
        appointment = lifecycle.update_status(
            db,
            appointment_id,
            data.status,
            current_user.id,
            clock,
            notes=data.notes,
        )
        return _to_response(appointment)


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors(db):
        lifecycle.delete_appointment(db, appointment_id, current_user.id)
