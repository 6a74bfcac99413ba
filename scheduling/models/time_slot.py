"""Time slot model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Time, UniqueConstraint, and_, or_
from scheduling.database import Base, utcnow


class TimeSlot(Base):
    """A concrete bookable interval generated from an availability rule."""
    __tablename__ = "time_slots"
    __table_args__ = (
        UniqueConstraint(
            'doctor_id',
            'slot_date',
            'start_time',
            'consultation_mode',
            name='uq_time_slots_doctor_date_start_mode',
        ),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    slot_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    consultation_mode = Column(String, nullable=False)
    is_booked = Column(Boolean, nullable=False, default=False)
    is_locked = Column(Boolean, nullable=False, default=False)
    locked_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    locked_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def lock_active(self, now: datetime) -> bool:
        """A stored lock only counts while ``locked_until`` is in the future."""
        return bool(self.is_locked) and self.locked_until is not None and self.locked_until > now

    def is_available(self, now: datetime) -> bool:
        return not self.is_booked and not self.lock_active(now)

    def has_started(self, now: datetime) -> bool:
        return datetime.combine(self.slot_date, self.start_time) <= now


def starts_after(now: datetime):
    """SQL condition matching slots whose start is still in the future."""
    return or_(
        TimeSlot.slot_date > now.date(),
        and_(TimeSlot.slot_date == now.date(), TimeSlot.start_time > now.time()),
    )
