"""Appointment model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Time
from scheduling.database import Base, utcnow

STATUS_BOOKED = 'booked'
STATUS_COMPLETED = 'completed'
STATUS_CANCELLED = 'cancelled'
STATUS_RESCHEDULED = 'rescheduled'
APPOINTMENT_STATUSES = (STATUS_BOOKED, STATUS_COMPLETED, STATUS_CANCELLED, STATUS_RESCHEDULED)


class Appointment(Base):
    """Represents a confirmed appointment."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("time_slots.id"), nullable=False, unique=True)
    appointment_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    consultation_mode = Column(String, nullable=False)
    status = Column(String, nullable=False, default=STATUS_BOOKED)
    otp_verified = Column(Boolean, default=False)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
