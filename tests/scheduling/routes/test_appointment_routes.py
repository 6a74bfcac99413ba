from datetime import time

import pytest
from fastapi import HTTPException

from conftest import MONDAY
from scheduling.models.appointment import Appointment
from scheduling.routes.appointment_routes import (
    cancel_appointment,
    complete_appointment,
    list_doctor_appointments,
    list_my_appointments,
    restore_appointment,
)


@pytest.fixture(autouse=True)
def skip_schema_bootstrap(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('scheduling.routes.appointment_routes.ensure_database_ready', lambda: None)


@pytest.fixture
def booked_appointment(db, doctor, patient, make_slot) -> Appointment:
    slot = make_slot(start=time(11, 0), end=time(11, 30), is_booked=True)
    appointment = Appointment(
        doctor_id=doctor.id,
        patient_id=patient.id,
        slot_id=slot.id,
        appointment_date=MONDAY,
        start_time=slot.start_time,
        end_time=slot.end_time,
        consultation_mode=slot.consultation_mode,
        status='booked',
        otp_verified=True,
        notes='Follow-up on blood work',
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


def test_doctor_can_complete_booked_appointment(db, doctor, booked_appointment) -> None:
    completed = complete_appointment(appointment_id=booked_appointment.id, current_user=doctor, db=db)

    assert completed.status == 'completed'


def test_completed_appointment_cannot_be_cancelled(db, doctor, booked_appointment) -> None:
    complete_appointment(appointment_id=booked_appointment.id, current_user=doctor, db=db)

    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(appointment_id=booked_appointment.id, current_user=doctor, db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail['code'] == 'invalid_transition'


def test_cancel_then_restore_round_trips_status(db, doctor, booked_appointment) -> None:
    cancelled = cancel_appointment(appointment_id=booked_appointment.id, current_user=doctor, db=db)
    assert cancelled.status == 'cancelled'

    restored = restore_appointment(appointment_id=booked_appointment.id, current_user=doctor, db=db)
    assert restored.status == 'booked'


def test_other_doctor_cannot_change_status(db, other_doctor, booked_appointment) -> None:
    with pytest.raises(HTTPException) as exception_info:
        complete_appointment(appointment_id=booked_appointment.id, current_user=other_doctor, db=db)

    assert exception_info.value.status_code == 403


def test_change_status_returns_not_found_when_missing(db, doctor) -> None:
    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(appointment_id=999, current_user=doctor, db=db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == {'code': 'appointment_not_found', 'message': 'Appointment not found.'}


@pytest.mark.parametrize('status_filter', [None, 'all', ' Booked '])
def test_list_doctor_appointments_accepts_status_filters(db, doctor, booked_appointment, status_filter) -> None:
    appointments = list_doctor_appointments(status=status_filter, current_user=doctor, db=db)

    assert [appointment.id for appointment in appointments] == [booked_appointment.id]


def test_list_doctor_appointments_rejects_unknown_status(db, doctor) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_doctor_appointments(status='pending', current_user=doctor, db=db)

    assert exception_info.value.status_code == 400


def test_list_my_appointments_only_returns_own(db, patient, other_patient, booked_appointment) -> None:
    assert [appointment.id for appointment in list_my_appointments(patient_id=patient.id, db=db)] == [
        booked_appointment.id
    ]
    assert list_my_appointments(patient_id=other_patient.id, db=db) == []
