from datetime import date, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scheduling.auth.dependencies import require_doctor
from scheduling.core import errors
from scheduling.database import get_db, ensure_time_slot_schema, ensure_appointment_schema
from scheduling.models.availability_rule import RULE_MODES, SLOT_MODES
from scheduling.models.user import User
from scheduling.routes.http_errors import database_unavailable, to_http_exception
from scheduling.services import rule_store, slot_generator

router = APIRouter(tags=['availability'])


def _normalize_mode(value: str | None, allowed: tuple[str, ...]) -> str | None:
    if value is None:
        return None

    normalized = value.strip().lower().replace('_', '-')
    if normalized not in allowed:
        raise ValueError(f'Consultation mode must be one of {", ".join(allowed)}.')
    return normalized


class CreateRuleRequest(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration: int = 30
    consultation_mode: str = 'both'
    is_active: bool = True

    @field_validator('consultation_mode')
    @classmethod
    def validate_consultation_mode(cls, value: str) -> str:
        return _normalize_mode(value, RULE_MODES)


class UpdateRuleRequest(BaseModel):
    day_of_week: int | None = None
    start_time: time | None = None
    end_time: time | None = None
    slot_duration: int | None = None
    consultation_mode: str | None = None
    is_active: bool | None = None

    @field_validator('consultation_mode')
    @classmethod
    def validate_consultation_mode(cls, value: str | None) -> str | None:
        return _normalize_mode(value, RULE_MODES)


class RuleResponse(BaseModel):
    id: int
    doctor_id: int
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration: int
    consultation_mode: str
    is_active: bool

    class Config:
        from_attributes = True


class TimeSlotResponse(BaseModel):
    id: int
    doctor_id: int
    slot_date: date
    start_time: time
    end_time: time
    consultation_mode: str

    class Config:
        from_attributes = True


class GenerateSlotsResponse(BaseModel):
    created: int


def ensure_database_ready() -> None:
    try:
        ensure_time_slot_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/rules', response_model=list[RuleResponse])
def list_rules(current_user: User = Depends(require_doctor), db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return rule_store.list_rules(db, current_user.id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/rules', response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
def create_rule(
    data: CreateRuleRequest,
    current_user: User = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return rule_store.create_rule(
            db,
            doctor_id=current_user.id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            slot_duration=data.slot_duration,
            consultation_mode=data.consultation_mode,
            is_active=data.is_active,
        )
    except errors.SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.patch('/rules/{rule_id}', response_model=RuleResponse)
def update_rule(
    rule_id: int,
    data: UpdateRuleRequest,
    current_user: User = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    changes = data.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='No changes supplied.',
        )

    ensure_database_ready()

    try:
        return rule_store.update_rule(db, rule_id, current_user.id, **changes)
    except errors.SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/rules/{rule_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: int,
    current_user: User = Depends(require_doctor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        rule_store.delete_rule(db, rule_id, current_user.id)
    except errors.SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/rules/generate', response_model=GenerateSlotsResponse)
def generate_slots(current_user: User = Depends(require_doctor), db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        created = slot_generator.generate_slots_for_doctor(db, current_user.id)
        return GenerateSlotsResponse(created=created)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/slots', response_model=list[TimeSlotResponse])
def list_available_slots(
    doctor_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    consultation_mode: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if consultation_mode is not None and consultation_mode.strip().lower() == 'all':
        consultation_mode = None

    try:
        mode = _normalize_mode(consultation_mode, SLOT_MODES)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    ensure_database_ready()

    try:
        return slot_generator.list_available_slots(db, doctor_id, slot_date, consultation_mode=mode)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
