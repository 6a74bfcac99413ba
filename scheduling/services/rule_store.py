import logging
from datetime import date, datetime, time

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from scheduling.core import config, errors
from scheduling.models.availability_rule import AvailabilityRule, RULE_MODES
from scheduling.services import slot_generator

logger = logging.getLogger(__name__)

RULE_FIELDS = ('day_of_week', 'start_time', 'end_time', 'slot_duration', 'consultation_mode', 'is_active')
SHAPE_FIELDS = ('day_of_week', 'start_time', 'end_time', 'slot_duration', 'consultation_mode')


def validate_rule_fields(
    day_of_week: int,
    start_time: time,
    end_time: time,
    slot_duration: int,
    consultation_mode: str,
) -> None:
    if not 0 <= day_of_week <= 6:
        raise errors.ValidationError('Day of week must be between 0 (Sunday) and 6 (Saturday).')

    if end_time <= start_time:
        raise errors.ValidationError('End time must be after start time.')

    if slot_duration not in config.ALLOWED_SLOT_DURATIONS:
        allowed = ', '.join(str(duration) for duration in config.ALLOWED_SLOT_DURATIONS)
        raise errors.ValidationError(f'Slot duration must be one of {allowed} minutes.')

    if consultation_mode not in RULE_MODES:
        raise errors.ValidationError('Consultation mode must be online, in-person or both.')


def _ensure_day_free(db: Session, doctor_id: int, day_of_week: int, exclude_rule_id: int | None = None) -> None:
    query = db.query(AvailabilityRule).filter(
        AvailabilityRule.doctor_id == doctor_id,
        AvailabilityRule.day_of_week == day_of_week,
    )
    if exclude_rule_id is not None:
        query = query.filter(AvailabilityRule.id != exclude_rule_id)

    if query.first():
        raise errors.ValidationError('Rule for this day already exists.')


def get_rule(db: Session, rule_id: int, doctor_id: int) -> AvailabilityRule:
    rule = db.query(AvailabilityRule).filter(AvailabilityRule.id == rule_id).first()
    if rule is None:
        raise errors.RuleNotFound()
    if rule.doctor_id != doctor_id:
        raise errors.PermissionDenied('Only the owning doctor can manage this availability rule.')
    return rule


def list_rules(db: Session, doctor_id: int) -> list[AvailabilityRule]:
    return db.query(AvailabilityRule).filter(
        AvailabilityRule.doctor_id == doctor_id,
    ).order_by(AvailabilityRule.day_of_week.asc()).all()


def create_rule(
    db: Session,
    doctor_id: int,
    day_of_week: int,
    start_time: time,
    end_time: time,
    slot_duration: int = 30,
    consultation_mode: str = 'both',
    is_active: bool = True,
    today: date | None = None,
) -> AvailabilityRule:
    """Store a new weekly rule and generate its slots over the horizon."""
    validate_rule_fields(day_of_week, start_time, end_time, slot_duration, consultation_mode)
    _ensure_day_free(db, doctor_id, day_of_week)

    rule = AvailabilityRule(
        doctor_id=doctor_id,
        day_of_week=day_of_week,
        start_time=start_time,
        end_time=end_time,
        slot_duration=slot_duration,
        consultation_mode=consultation_mode,
        is_active=is_active,
    )
    db.add(rule)
    _commit_rule(db)
    db.refresh(rule)
    logger.info('Doctor %s added availability rule %s for day %s', doctor_id, rule.id, day_of_week)

    if rule.is_active:
        slot_generator.generate_slots_for_rule(db, rule, today=today)

    return rule


def update_rule(
    db: Session,
    rule_id: int,
    doctor_id: int,
    today: date | None = None,
    now: datetime | None = None,
    **changes,
) -> AvailabilityRule:
    """Apply a partial update; the merged rule is validated before writing.

    Changing the day, window, duration or mode drops the old rule's open
    slots from today on and, for an active rule, generates the new ones.
    Booked slots and slots someone is holding are kept. Toggling
    ``is_active`` alone leaves generated slots alone.
    """
    rule = get_rule(db, rule_id, doctor_id)

    unknown = set(changes) - set(RULE_FIELDS)
    if unknown:
        raise errors.ValidationError(f'Unknown rule fields: {", ".join(sorted(unknown))}.')

    merged = {field: changes.get(field, getattr(rule, field)) for field in RULE_FIELDS}
    validate_rule_fields(
        merged['day_of_week'],
        merged['start_time'],
        merged['end_time'],
        merged['slot_duration'],
        merged['consultation_mode'],
    )
    if merged['day_of_week'] != rule.day_of_week:
        _ensure_day_free(db, doctor_id, merged['day_of_week'], exclude_rule_id=rule.id)

    reshaped = any(merged[field] != getattr(rule, field) for field in SHAPE_FIELDS)
    if reshaped:
        slot_generator.clear_open_slots(db, doctor_id, rule.day_of_week, today=today, now=now)

    for field, value in changes.items():
        setattr(rule, field, value)
    _commit_rule(db)
    db.refresh(rule)
    logger.info('Doctor %s updated availability rule %s: %s', doctor_id, rule.id, sorted(changes))

    if reshaped and rule.is_active:
        slot_generator.generate_slots_for_rule(db, rule, today=today)

    return rule


def _commit_rule(db: Session) -> None:
    # The unique (doctor_id, day_of_week) constraint catches a request that
    # passed _ensure_day_free concurrently with another one.
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise errors.ValidationError('Rule for this day already exists.') from exc


def delete_rule(db: Session, rule_id: int, doctor_id: int) -> None:
    rule = get_rule(db, rule_id, doctor_id)
    db.delete(rule)
    db.commit()
    logger.info('Doctor %s deleted availability rule %s', doctor_id, rule_id)
