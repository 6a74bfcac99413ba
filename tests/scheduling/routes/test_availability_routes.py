from datetime import time, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from conftest import MONDAY, NOW
from scheduling.database import utcnow
from scheduling.models.availability_rule import AvailabilityRule
from scheduling.routes.availability_routes import (
    CreateRuleRequest,
    UpdateRuleRequest,
    create_rule,
    delete_rule,
    list_available_slots,
    list_rules,
    update_rule,
)
from scheduling.services import slot_locks

UPCOMING = utcnow().date() + timedelta(days=7)


@pytest.fixture(autouse=True)
def skip_schema_bootstrap(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('scheduling.routes.availability_routes.ensure_database_ready', lambda: None)


def test_create_rule_request_normalizes_consultation_mode() -> None:
    request = CreateRuleRequest(
        day_of_week=1,
        start_time=time(9, 0),
        end_time=time(12, 0),
        consultation_mode=' In_Person ',
    )

    assert request.consultation_mode == 'in-person'
    assert request.slot_duration == 30


def test_create_rule_request_rejects_unknown_mode() -> None:
    with pytest.raises(ValidationError):
        CreateRuleRequest(day_of_week=1, start_time=time(9, 0), end_time=time(12, 0), consultation_mode='phone')


def test_create_rule_returns_saved_rule(db, doctor) -> None:
    request = CreateRuleRequest(day_of_week=1, start_time=time(9, 0), end_time=time(10, 0), slot_duration=15)

    rule = create_rule(data=request, current_user=doctor, db=db)

    assert rule.id is not None
    assert rule.doctor_id == doctor.id
    assert rule.slot_duration == 15
    assert rule.consultation_mode == 'both'


def test_create_rule_maps_validation_failure_to_bad_request(db, doctor) -> None:
    request = CreateRuleRequest(day_of_week=1, start_time=time(10, 0), end_time=time(9, 0))

    with pytest.raises(HTTPException) as exception_info:
        create_rule(data=request, current_user=doctor, db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == {
        'code': 'validation_error',
        'message': 'End time must be after start time.',
    }


def test_create_rule_rejects_second_rule_for_same_day(db, doctor) -> None:
    request = CreateRuleRequest(day_of_week=3, start_time=time(9, 0), end_time=time(10, 0), is_active=False)
    create_rule(data=request, current_user=doctor, db=db)

    with pytest.raises(HTTPException) as exception_info:
        create_rule(data=request, current_user=doctor, db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['message'] == 'Rule for this day already exists.'


def test_list_rules_only_returns_current_doctors_rules(db, doctor, other_doctor) -> None:
    request = CreateRuleRequest(day_of_week=2, start_time=time(9, 0), end_time=time(10, 0), is_active=False)
    create_rule(data=request, current_user=doctor, db=db)
    create_rule(data=request, current_user=other_doctor, db=db)

    rules = list_rules(current_user=doctor, db=db)

    assert [rule.doctor_id for rule in rules] == [doctor.id]


def test_update_rule_requires_changes(db, doctor) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_rule(rule_id=1, data=UpdateRuleRequest(), current_user=doctor, db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'No changes supplied.'


def test_update_rule_rejects_other_doctor(db, doctor, other_doctor) -> None:
    request = CreateRuleRequest(day_of_week=4, start_time=time(9, 0), end_time=time(10, 0), is_active=False)
    rule = create_rule(data=request, current_user=doctor, db=db)

    with pytest.raises(HTTPException) as exception_info:
        update_rule(
            rule_id=rule.id,
            data=UpdateRuleRequest(is_active=True),
            current_user=other_doctor,
            db=db,
        )

    assert exception_info.value.status_code == 403


def test_update_rule_applies_partial_changes(db, doctor) -> None:
    request = CreateRuleRequest(day_of_week=4, start_time=time(9, 0), end_time=time(10, 0), is_active=False)
    rule = create_rule(data=request, current_user=doctor, db=db)

    updated = update_rule(
        rule_id=rule.id,
        data=UpdateRuleRequest(end_time=time(11, 0), consultation_mode='online'),
        current_user=doctor,
        db=db,
    )

    assert updated.start_time == time(9, 0)
    assert updated.end_time == time(11, 0)
    assert updated.consultation_mode == 'online'


def test_delete_rule_returns_not_found_when_missing(db, doctor) -> None:
    with pytest.raises(HTTPException) as exception_info:
        delete_rule(rule_id=999, current_user=doctor, db=db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail['code'] == 'rule_not_found'


def test_delete_rule_removes_rule(db, doctor) -> None:
    request = CreateRuleRequest(day_of_week=5, start_time=time(9, 0), end_time=time(10, 0), is_active=False)
    rule = create_rule(data=request, current_user=doctor, db=db)

    delete_rule(rule_id=rule.id, current_user=doctor, db=db)

    assert db.query(AvailabilityRule).count() == 0


def test_list_available_slots_hides_booked_and_locked_slots(db, doctor, patient, make_slot) -> None:
    free = make_slot(start=time(9, 0), end=time(9, 30), slot_date=UPCOMING)
    make_slot(start=time(9, 30), end=time(10, 0), slot_date=UPCOMING, is_booked=True)
    locked = make_slot(start=time(10, 0), end=time(10, 30), slot_date=UPCOMING)
    slot_locks.acquire(db, locked.id, patient.id)

    slots = list_available_slots(doctor_id=doctor.id, slot_date=UPCOMING, consultation_mode=None, db=db)

    assert [slot.id for slot in slots] == [free.id]


def test_list_available_slots_filters_by_mode(db, doctor, make_slot) -> None:
    make_slot(mode='online', slot_date=UPCOMING)
    in_person = make_slot(mode='in-person', slot_date=UPCOMING)

    slots = list_available_slots(doctor_id=doctor.id, slot_date=UPCOMING, consultation_mode='In_Person', db=db)

    assert [slot.id for slot in slots] == [in_person.id]


@pytest.mark.parametrize('consultation_mode', [None, 'all', ' ALL '])
def test_list_available_slots_treats_all_as_no_filter(db, doctor, make_slot, consultation_mode) -> None:
    online = make_slot(mode='online', slot_date=UPCOMING)
    in_person = make_slot(mode='in-person', slot_date=UPCOMING)

    slots = list_available_slots(doctor_id=doctor.id, slot_date=UPCOMING, consultation_mode=consultation_mode, db=db)

    assert {slot.id for slot in slots} == {online.id, in_person.id}


def test_list_available_slots_rejects_unknown_mode(db, doctor) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_available_slots(doctor_id=doctor.id, slot_date=UPCOMING, consultation_mode='both', db=db)

    assert exception_info.value.status_code == 400


def test_list_available_slots_hides_past_days(db, doctor, make_slot) -> None:
    make_slot(slot_date=MONDAY)

    assert list_available_slots(doctor_id=doctor.id, slot_date=MONDAY, consultation_mode=None, db=db) == []


def test_expired_lock_slot_is_listed_again(db, doctor, patient, make_slot) -> None:
    slot = make_slot(slot_date=UPCOMING)
    slot_locks.acquire(db, slot.id, patient.id, now=NOW)

    slots = list_available_slots(doctor_id=doctor.id, slot_date=UPCOMING, consultation_mode='online', db=db)

    assert [listed.id for listed in slots] == [slot.id]


def test_racing_rule_for_same_day_returns_bad_request(db, doctor, monkeypatch: pytest.MonkeyPatch) -> None:
    request = CreateRuleRequest(day_of_week=6, start_time=time(9, 0), end_time=time(10, 0), is_active=False)
    create_rule(data=request, current_user=doctor, db=db)
    monkeypatch.setattr('scheduling.services.rule_store._ensure_day_free', lambda *args, **kwargs: None)

    with pytest.raises(HTTPException) as exception_info:
        create_rule(data=request, current_user=doctor, db=db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == {
        'code': 'validation_error',
        'message': 'Rule for this day already exists.',
    }
