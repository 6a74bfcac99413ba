"""User model definitions."""

from sqlalchemy import Column, Integer, String
from scheduling.database import Base

DOCTOR_ROLE = 'doctor'
PATIENT_ROLE = 'patient'


class User(Base):
    """Local mirror of an identity-provider subject."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    role = Column(String, default=PATIENT_ROLE)  # doctor/patient

    @property
    def is_doctor(self) -> bool:
        return self.role == DOCTOR_ROLE
