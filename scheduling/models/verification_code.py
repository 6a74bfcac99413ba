"""Verification code model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from scheduling.database import Base, utcnow


class VerificationCode(Base):
    """A single-use code sent to a user before a booking is confirmed."""
    __tablename__ = "verification_codes"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    code = Column(String, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    consumed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
