import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import and_, delete, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from scheduling.core import config
from scheduling.database import utcnow
from scheduling.models.availability_rule import AvailabilityRule
from scheduling.models.time_slot import TimeSlot, starts_after

logger = logging.getLogger(__name__)

SLOT_KEY_COLUMNS = ['doctor_id', 'slot_date', 'start_time', 'consultation_mode']
INSERT_CHUNK_SIZE = 500


@dataclass(frozen=True)
class SlotSpec:
    doctor_id: int
    slot_date: date
    start_time: time
    end_time: time
    consultation_mode: str

    def as_row(self) -> dict:
        return {
            'doctor_id': self.doctor_id,
            'slot_date': self.slot_date,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'consultation_mode': self.consultation_mode,
            'is_booked': False,
            'is_locked': False,
        }


def day_of_week(value: date) -> int:
    """Sunday-based weekday index used by availability rules."""
    return (value.weekday() + 1) % 7


def iterate_slot_ranges(start_time: time, end_time: time, duration_minutes: int) -> list[tuple[time, time]]:
    if duration_minutes <= 0 or end_time <= start_time:
        return []

    anchor = date(2000, 1, 1)
    current = datetime.combine(anchor, start_time)
    window_end = datetime.combine(anchor, end_time)
    step = timedelta(minutes=duration_minutes)

    ranges: list[tuple[time, time]] = []
    while current + step <= window_end:
        ranges.append((current.time(), (current + step).time()))
        current += step

    return ranges


def plan_rule_slots(rule: AvailabilityRule, start_date: date, days: int) -> list[SlotSpec]:
    ranges = iterate_slot_ranges(rule.start_time, rule.end_time, rule.slot_duration)
    if not ranges:
        return []

    specs: list[SlotSpec] = []
    for offset in range(days):
        slot_date = start_date + timedelta(days=offset)
        if day_of_week(slot_date) != rule.day_of_week:
            continue
        for slot_start, slot_end in ranges:
            for mode in rule.slot_modes:
                specs.append(
                    SlotSpec(
                        doctor_id=rule.doctor_id,
                        slot_date=slot_date,
                        start_time=slot_start,
                        end_time=slot_end,
                        consultation_mode=mode,
                    )
                )

    return specs


def _drop_overlapping(db: Session, specs: list[SlotSpec]) -> list[SlotSpec]:
    """Leave out planned slots that would overlap a stored slot of the same doctor.

    A stored slot with exactly the same range does not count, so a "both"
    rule can still place its second mode next to the first and reruns fall
    through to the conflict clause.
    """
    if not specs:
        return specs

    doctor_ids = {spec.doctor_id for spec in specs}
    dates = {spec.slot_date for spec in specs}
    stored: dict[tuple[int, date], list[tuple[time, time]]] = {}
    for doctor_id, slot_date, start_time, end_time in db.query(
        TimeSlot.doctor_id,
        TimeSlot.slot_date,
        TimeSlot.start_time,
        TimeSlot.end_time,
    ).filter(
        TimeSlot.doctor_id.in_(doctor_ids),
        TimeSlot.slot_date.in_(dates),
    ):
        stored.setdefault((doctor_id, slot_date), []).append((start_time, end_time))

    kept = []
    for spec in specs:
        clashes = [
            (start_time, end_time)
            for start_time, end_time in stored.get((spec.doctor_id, spec.slot_date), ())
            if start_time < spec.end_time
            and spec.start_time < end_time
            and (start_time, end_time) != (spec.start_time, spec.end_time)
        ]
        if clashes:
            logger.warning(
                'Skipping slot %s %s-%s for doctor %s, it overlaps %s stored slot(s)',
                spec.slot_date,
                spec.start_time,
                spec.end_time,
                spec.doctor_id,
                len(clashes),
            )
            continue
        kept.append(spec)

    return kept


def clear_open_slots(
    db: Session,
    doctor_id: int,
    weekday: int,
    today: date | None = None,
    now: datetime | None = None,
) -> int:
    """Delete the doctor's unbooked, unheld slots on ``weekday`` from today on.

    Does not commit. Booked slots and slots under an active lock stay.
    """
    now = now or utcnow()
    today = today or now.date()

    slot_ids = [
        slot.id
        for slot in db.query(TimeSlot).filter(
            TimeSlot.doctor_id == doctor_id,
            TimeSlot.slot_date >= today,
            TimeSlot.is_booked.is_(False),
        )
        if day_of_week(slot.slot_date) == weekday
    ]
    if not slot_ids:
        return 0

    result = db.execute(
        delete(TimeSlot)
        .where(
            TimeSlot.id.in_(slot_ids),
            TimeSlot.is_booked.is_(False),
            or_(
                TimeSlot.is_locked.is_(False),
                TimeSlot.locked_until.is_(None),
                TimeSlot.locked_until <= now,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    cleared = max(result.rowcount or 0, 0)
    logger.info('Cleared %s open slots on day %s for doctor %s', cleared, weekday, doctor_id)
    return cleared


def _insert_missing(db: Session, specs: list[SlotSpec]) -> int:
    """Insert slots, skipping any whose key already exists. Returns rows inserted."""
    if not specs:
        return 0

    dialect_name = db.get_bind().dialect.name
    if dialect_name == 'postgresql':
        insert = postgresql.insert
    elif dialect_name == 'sqlite':
        insert = sqlite.insert
    else:
        raise NotImplementedError(f'Idempotent slot insert is not supported on {dialect_name}.')

    inserted = 0
    for chunk_start in range(0, len(specs), INSERT_CHUNK_SIZE):
        chunk = specs[chunk_start:chunk_start + INSERT_CHUNK_SIZE]
        statement = insert(TimeSlot).values([spec.as_row() for spec in chunk])
        statement = statement.on_conflict_do_nothing(index_elements=SLOT_KEY_COLUMNS)
        result = db.execute(statement)
        inserted += max(result.rowcount or 0, 0)
    db.commit()

    return inserted


def generate_slots_for_rule(
    db: Session,
    rule: AvailabilityRule,
    today: date | None = None,
    horizon_days: int | None = None,
) -> int:
    today = today or utcnow().date()
    horizon_days = horizon_days or config.SLOT_HORIZON_DAYS

    specs = plan_rule_slots(rule, today, horizon_days)
    inserted = _insert_missing(db, _drop_overlapping(db, specs))
    logger.info(
        'Generated %s new slots (%s planned) for rule %s of doctor %s',
        inserted,
        len(specs),
        rule.id,
        rule.doctor_id,
    )
    return inserted


def generate_slots_for_doctor(
    db: Session,
    doctor_id: int,
    today: date | None = None,
    horizon_days: int | None = None,
) -> int:
    rules = db.query(AvailabilityRule).filter(
        AvailabilityRule.doctor_id == doctor_id,
        AvailabilityRule.is_active.is_(True),
    ).all()

    return sum(generate_slots_for_rule(db, rule, today=today, horizon_days=horizon_days) for rule in rules)


def roll_horizon(db: Session, today: date | None = None, horizon_days: int | None = None) -> int:
    """Regenerate slots for every doctor with active rules."""
    doctor_ids = [
        doctor_id
        for (doctor_id,) in db.query(AvailabilityRule.doctor_id).filter(
            AvailabilityRule.is_active.is_(True),
        ).distinct().all()
    ]

    total = 0
    for doctor_id in doctor_ids:
        total += generate_slots_for_doctor(db, doctor_id, today=today, horizon_days=horizon_days)

    logger.info('Rolled slot horizon for %s doctors, %s new slots', len(doctor_ids), total)
    return total


def list_available_slots(
    db: Session,
    doctor_id: int,
    slot_date: date,
    consultation_mode: str | None = None,
    now: datetime | None = None,
) -> list[TimeSlot]:
    now = now or utcnow()

    query = db.query(TimeSlot).filter(
        TimeSlot.doctor_id == doctor_id,
        TimeSlot.slot_date == slot_date,
        TimeSlot.is_booked.is_(False),
        starts_after(now),
        or_(
            TimeSlot.is_locked.is_(False),
            TimeSlot.locked_until.is_(None),
            and_(TimeSlot.is_locked.is_(True), TimeSlot.locked_until <= now),
        ),
    )
    if consultation_mode:
        query = query.filter(TimeSlot.consultation_mode == consultation_mode)

    return query.order_by(TimeSlot.start_time.asc(), TimeSlot.consultation_mode.asc()).all()
