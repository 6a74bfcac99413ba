"""Availability rule model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Time, UniqueConstraint
from scheduling.database import Base, utcnow

MODE_ONLINE = 'online'
MODE_IN_PERSON = 'in-person'
MODE_BOTH = 'both'
RULE_MODES = (MODE_ONLINE, MODE_IN_PERSON, MODE_BOTH)
SLOT_MODES = (MODE_ONLINE, MODE_IN_PERSON)


class AvailabilityRule(Base):
    """Recurring weekly availability for one doctor on one day of the week.

    ``day_of_week`` counts from Sunday (0) to Saturday (6).
    """
    __tablename__ = "availability_rules"
    __table_args__ = (
        UniqueConstraint('doctor_id', 'day_of_week', name='uq_availability_rules_doctor_day'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration = Column(Integer, nullable=False, default=30)
    consultation_mode = Column(String, nullable=False, default=MODE_BOTH)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def slot_modes(self) -> tuple[str, ...]:
        if self.consultation_mode == MODE_BOTH:
            return SLOT_MODES
        return (self.consultation_mode,)
