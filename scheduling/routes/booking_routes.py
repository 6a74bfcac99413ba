from datetime import date, datetime, time

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scheduling.auth.dependencies import get_current_user_id
from scheduling.core import config, errors
from scheduling.database import get_db
from scheduling.models.booking_session import BookingSession
from scheduling.routes.appointment_routes import AppointmentResponse
from scheduling.routes.availability_routes import ensure_database_ready
from scheduling.routes.http_errors import database_unavailable, to_http_exception
from scheduling.services.booking_flow import BookingFlow
from scheduling.services.verification import DatabaseVerificationService

router = APIRouter(tags=['bookings'])


class SelectSlotRequest(BaseModel):
    slot_id: int


class SubmitDetailsRequest(BaseModel):
    symptoms: str

    @field_validator('symptoms')
    @classmethod
    def validate_symptoms(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Symptoms are required.')
        if len(normalized) > config.MAX_SYMPTOMS_LENGTH:
            raise ValueError(f'Symptoms must be {config.MAX_SYMPTOMS_LENGTH} characters or fewer.')
        return normalized


class VerifyCodeRequest(BaseModel):
    code: str

    @field_validator('code')
    @classmethod
    def validate_code(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized.isdigit():
            raise ValueError('Verification code must be numeric.')
        return normalized


class HeldSlotResponse(BaseModel):
    id: int
    slot_date: date
    start_time: time
    end_time: time
    consultation_mode: str
    locked_until: datetime | None = None


class BookingResponse(BaseModel):
    id: int
    state: str
    slot: HeldSlotResponse | None = None
    symptoms: str | None = None
    appointment_id: int | None = None


def get_booking_flow(db: Session = Depends(get_db)) -> BookingFlow:
    return BookingFlow(db, DatabaseVerificationService(db))


def build_booking_response(flow: BookingFlow, booking: BookingSession) -> BookingResponse:
    slot = flow.held_slot(booking)
    return BookingResponse(
        id=booking.id,
        state=booking.state,
        slot=HeldSlotResponse(
            id=slot.id,
            slot_date=slot.slot_date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            consultation_mode=slot.consultation_mode,
            locked_until=slot.locked_until,
        ) if slot is not None else None,
        symptoms=booking.symptoms,
        appointment_id=booking.appointment_id,
    )


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def start_booking(
    patient_id: int = Depends(get_current_user_id),
    flow: BookingFlow = Depends(get_booking_flow),
):
    ensure_database_ready()

    try:
        booking = flow.start(patient_id)
        return build_booking_response(flow, booking)
    except SQLAlchemyError as exc:
        flow.db.rollback()
        raise database_unavailable() from exc


@router.get('/{booking_id}', response_model=BookingResponse)
def get_booking(
    booking_id: int,
    patient_id: int = Depends(get_current_user_id),
    flow: BookingFlow = Depends(get_booking_flow),
):
    ensure_database_ready()

    try:
        booking = flow.get(booking_id, patient_id)
        return build_booking_response(flow, booking)
    except errors.SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{booking_id}/slot', response_model=BookingResponse)
def select_slot(
    booking_id: int,
    data: SelectSlotRequest,
    patient_id: int = Depends(get_current_user_id),
    flow: BookingFlow = Depends(get_booking_flow),
):
    ensure_database_ready()

    try:
        booking = flow.get(booking_id, patient_id)
        flow.select_slot(booking, data.slot_id)
        return build_booking_response(flow, booking)
    except errors.SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        flow.db.rollback()
        raise database_unavailable() from exc


@router.post('/{booking_id}/details', response_model=BookingResponse)
def submit_details(
    booking_id: int,
    data: SubmitDetailsRequest,
    patient_id: int = Depends(get_current_user_id),
    flow: BookingFlow = Depends(get_booking_flow),
):
    ensure_database_ready()

    try:
        booking = flow.get(booking_id, patient_id)
        flow.submit_details(booking, data.symptoms)
        return build_booking_response(flow, booking)
    except errors.SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        flow.db.rollback()
        raise database_unavailable() from exc


@router.post('/{booking_id}/resend-code', response_model=BookingResponse)
def resend_code(
    booking_id: int,
    patient_id: int = Depends(get_current_user_id),
    flow: BookingFlow = Depends(get_booking_flow),
):
    ensure_database_ready()

    try:
        booking = flow.get(booking_id, patient_id)
        flow.resend_code(booking)
        return build_booking_response(flow, booking)
    except errors.SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        flow.db.rollback()
        raise database_unavailable() from exc


@router.post('/{booking_id}/verify', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def verify_booking(
    booking_id: int,
    data: VerifyCodeRequest,
    patient_id: int = Depends(get_current_user_id),
    flow: BookingFlow = Depends(get_booking_flow),
):
    ensure_database_ready()

    try:
        booking = flow.get(booking_id, patient_id)
        return flow.verify(booking, data.code)
    except errors.SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        flow.db.rollback()
        raise database_unavailable() from exc


@router.post('/{booking_id}/cancel', response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    patient_id: int = Depends(get_current_user_id),
    flow: BookingFlow = Depends(get_booking_flow),
):
    return _abandon(booking_id, patient_id, flow, reason='cancelled')


@router.post('/{booking_id}/back', response_model=BookingResponse)
def go_back(
    booking_id: int,
    patient_id: int = Depends(get_current_user_id),
    flow: BookingFlow = Depends(get_booking_flow),
):
    return _abandon(booking_id, patient_id, flow, reason='navigated back')


def _abandon(booking_id: int, patient_id: int, flow: BookingFlow, reason: str) -> BookingResponse:
    ensure_database_ready()

    try:
        booking = flow.get(booking_id, patient_id)
        flow.cancel(booking, reason=reason)
        return build_booking_response(flow, booking)
    except errors.SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        flow.db.rollback()
        raise database_unavailable() from exc
