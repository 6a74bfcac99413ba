import logging

from sqlalchemy.orm import Session

from scheduling.core import errors
from scheduling.models.appointment import (
    Appointment,
    APPOINTMENT_STATUSES,
    STATUS_BOOKED,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
)

logger = logging.getLogger(__name__)

# Status changes leave the consumed slot booked.
ALLOWED_TRANSITIONS = {
    'complete': (STATUS_BOOKED, STATUS_COMPLETED),
    'cancel': (STATUS_BOOKED, STATUS_CANCELLED),
    'restore': (STATUS_CANCELLED, STATUS_BOOKED),
}


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise errors.AppointmentNotFound()
    return appointment


def _transition(db: Session, appointment_id: int, doctor_id: int, action: str) -> Appointment:
    from_status, to_status = ALLOWED_TRANSITIONS[action]
    appointment = get_appointment(db, appointment_id)

    if appointment.doctor_id != doctor_id:
        raise errors.PermissionDenied('Only the appointment\'s doctor can change its status.')

    if appointment.status != from_status:
        raise errors.InvalidTransition(
            f'Cannot {action} an appointment that is {appointment.status}.'
        )

    appointment.status = to_status
    db.commit()
    db.refresh(appointment)
    logger.info('Doctor %s moved appointment %s from %s to %s', doctor_id, appointment_id, from_status, to_status)

    return appointment


def complete(db: Session, appointment_id: int, doctor_id: int) -> Appointment:
    return _transition(db, appointment_id, doctor_id, 'complete')


def cancel(db: Session, appointment_id: int, doctor_id: int) -> Appointment:
    return _transition(db, appointment_id, doctor_id, 'cancel')


def restore(db: Session, appointment_id: int, doctor_id: int) -> Appointment:
    return _transition(db, appointment_id, doctor_id, 'restore')


def list_doctor_appointments(db: Session, doctor_id: int, status: str | None = None) -> list[Appointment]:
    query = db.query(Appointment).filter(Appointment.doctor_id == doctor_id)

    if status:
        if status not in APPOINTMENT_STATUSES:
            raise errors.ValidationError('Invalid appointment status.')
        query = query.filter(Appointment.status == status)

    return query.order_by(Appointment.appointment_date.desc(), Appointment.start_time.asc()).all()


def list_patient_appointments(db: Session, patient_id: int) -> list[Appointment]:
    return db.query(Appointment).filter(
        Appointment.patient_id == patient_id,
    ).order_by(Appointment.appointment_date.asc(), Appointment.start_time.asc()).all()
