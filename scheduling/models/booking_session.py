"""Booking session model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from scheduling.database import Base, utcnow

STATE_SELECTING_SLOT = 'selecting_slot'
STATE_DETAILS_ENTRY = 'details_entry'
STATE_VERIFICATION = 'verification'
STATE_CONFIRMED = 'confirmed'


class BookingSession(Base):
    """One patient's progress through the booking flow."""
    __tablename__ = "booking_sessions"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    state = Column(String, nullable=False, default=STATE_SELECTING_SLOT)
    slot_id = Column(Integer, ForeignKey("time_slots.id", ondelete="SET NULL"), nullable=True)
    symptoms = Column(String, nullable=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
