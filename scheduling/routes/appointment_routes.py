from datetime import date, time

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scheduling.auth.dependencies import get_current_user_id, require_doctor
from scheduling.core import errors
from scheduling.database import get_db, ensure_appointment_schema
from scheduling.models.user import User
from scheduling.routes.http_errors import database_unavailable, to_http_exception
from scheduling.services import appointment_lifecycle

router = APIRouter(tags=['appointments'])


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    patient_id: int
    slot_id: int
    appointment_date: date
    start_time: time
    end_time: time
    consultation_mode: str
    status: str
    otp_verified: bool
    notes: str | None = None

    class Config:
        from_attributes = True


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctor', response_model=list[AppointmentResponse])
def list_doctor_appointments(
    status: str | None = Query(default=None),
    current_user: User = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        normalized_status = status.strip().lower() if status and status.strip().lower() != 'all' else None
        return appointment_lifecycle.list_doctor_appointments(db, current_user.id, normalized_status)
    except errors.SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    patient_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return appointment_lifecycle.list_patient_appointments(db, patient_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def _change_status(action, appointment_id: int, current_user: User, db: Session):
    ensure_database_ready()

    try:
        return action(db, appointment_id, current_user.id)
    except errors.SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    current_user: User = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    return _change_status(appointment_lifecycle.complete, appointment_id, current_user, db)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    return _change_status(appointment_lifecycle.cancel, appointment_id, current_user, db)


@router.post('/{appointment_id}/restore', response_model=AppointmentResponse)
def restore_appointment(
    appointment_id: int,
    current_user: User = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    return _change_status(appointment_lifecycle.restore, appointment_id, current_user, db)
