"""Exclusive, time-boxed holds on time slots.

Every write here is a single conditional ``UPDATE`` whose ``WHERE`` clause
encodes the expected lock state, so two sessions racing on the same slot can
never both succeed. Locks expire lazily: a lock whose ``locked_until`` has
passed is ignored by every query, and the stored flags are only cleared by
the next writer or by :func:`sweep_expired_locks`.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from scheduling.core import config, errors
from scheduling.database import utcnow
from scheduling.models.time_slot import TimeSlot, starts_after

logger = logging.getLogger(__name__)


def lock_duration() -> timedelta:
    return timedelta(minutes=config.SLOT_LOCK_MINUTES)


def is_lock_active(slot: TimeSlot, now: datetime | None = None) -> bool:
    return slot.lock_active(now or utcnow())


def _lock_is_free(now: datetime):
    return or_(
        TimeSlot.is_locked.is_(False),
        TimeSlot.locked_until.is_(None),
        TimeSlot.locked_until <= now,
    )


def _load_slot(db: Session, slot_id: int) -> TimeSlot:
    slot = db.query(TimeSlot).filter(TimeSlot.id == slot_id).populate_existing().first()
    if slot is None:
        raise errors.SlotNotFound()
    return slot


def acquire(db: Session, slot_id: int, requester_id: int, now: datetime | None = None) -> TimeSlot:
    """Grant ``requester_id`` a lock on the slot or raise a typed failure.

    A repeat call from the current holder succeeds without moving the
    deadline.
    """
    now = now or utcnow()
    locked_until = now + lock_duration()

    result = db.execute(
        update(TimeSlot)
        .where(
            TimeSlot.id == slot_id,
            TimeSlot.is_booked.is_(False),
            starts_after(now),
            _lock_is_free(now),
        )
        .values(is_locked=True, locked_by=requester_id, locked_until=locked_until, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    slot = _load_slot(db, slot_id)
    if result.rowcount == 1:
        logger.info('Slot %s locked by user %s until %s', slot_id, requester_id, locked_until.isoformat())
        return slot

    if slot.is_booked:
        raise errors.SlotUnavailable()
    if slot.has_started(now):
        raise errors.SlotUnavailable('This slot has already started.')
    if slot.lock_active(now) and slot.locked_by == requester_id:
        return slot

    logger.info('Slot %s lock refused for user %s, held by user %s', slot_id, requester_id, slot.locked_by)
    raise errors.SlotLocked()


def release(db: Session, slot_id: int, requester_id: int, now: datetime | None = None) -> bool:
    """Clear the lock if ``requester_id`` holds it or it has expired.

    Returns ``False`` without touching the slot when another user holds an
    active lock.
    """
    now = now or utcnow()

    result = db.execute(
        update(TimeSlot)
        .where(
            TimeSlot.id == slot_id,
            TimeSlot.is_locked.is_(True),
            or_(
                TimeSlot.locked_by == requester_id,
                TimeSlot.locked_until.is_(None),
                TimeSlot.locked_until <= now,
            ),
        )
        .values(is_locked=False, locked_by=None, locked_until=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    released = result.rowcount == 1
    if released:
        logger.info('Slot %s released by user %s', slot_id, requester_id)
    return released


def confirm(
    db: Session,
    slot_id: int,
    requester_id: int,
    now: datetime | None = None,
    commit: bool = True,
) -> TimeSlot:
    """Turn the requester's active lock into a booking.

    With ``commit=False`` the update joins the caller's transaction, so the
    slot and whatever the caller records alongside it land together.
    """
    now = now or utcnow()

    result = db.execute(
        update(TimeSlot)
        .where(
            TimeSlot.id == slot_id,
            TimeSlot.is_booked.is_(False),
            TimeSlot.is_locked.is_(True),
            TimeSlot.locked_by == requester_id,
            TimeSlot.locked_until > now,
        )
        .values(is_booked=True, is_locked=False, locked_by=None, locked_until=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 1:
        if commit:
            db.commit()
        logger.info('Slot %s booked by user %s', slot_id, requester_id)
        return _load_slot(db, slot_id)

    db.rollback()
    slot = _load_slot(db, slot_id)
    if slot.is_booked:
        raise errors.SlotUnavailable()
    if slot.lock_active(now) and slot.locked_by != requester_id:
        raise errors.LockNotHeld()

    logger.info('Slot %s confirm refused for user %s, lock expired', slot_id, requester_id)
    raise errors.LockExpired()


def sweep_expired_locks(db: Session, now: datetime | None = None) -> int:
    """Clear stored lock flags whose deadline has passed. Not needed for correctness."""
    now = now or utcnow()

    result = db.execute(
        update(TimeSlot)
        .where(
            TimeSlot.is_locked.is_(True),
            or_(TimeSlot.locked_until.is_(None), TimeSlot.locked_until <= now),
        )
        .values(is_locked=False, locked_by=None, locked_until=None, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    swept = max(result.rowcount or 0, 0)
    if swept:
        logger.info('Swept %s expired slot locks', swept)
    return swept
