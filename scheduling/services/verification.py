import logging
import secrets
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy import update
from sqlalchemy.orm import Session

from scheduling.core import config
from scheduling.database import utcnow
from scheduling.models.verification_code import VerificationCode
from scheduling.services.notifications import Notifier, default_notifier

logger = logging.getLogger(__name__)


class VerificationService(Protocol):
    def send_code(self, user_id: int) -> None:
        ...

    def check_code(self, user_id: int, code: str) -> bool:
        ...


def generate_code(length: int | None = None) -> str:
    length = length or config.VERIFICATION_CODE_LENGTH
    return ''.join(secrets.choice('0123456789') for _ in range(length))


class DatabaseVerificationService:
    """Stores single-use numeric codes and hands them to a notifier for delivery."""

    def __init__(self, db: Session, notifier: Notifier | None = None, now: datetime | None = None):
        self.db = db
        self.notifier = notifier or default_notifier
        self._now = now

    def now(self) -> datetime:
        return self._now or utcnow()

    def send_code(self, user_id: int) -> None:
        issued_at = self.now()

        # Only the most recent code stays valid.
        self.db.execute(
            update(VerificationCode)
            .where(
                VerificationCode.user_id == user_id,
                VerificationCode.consumed_at.is_(None),
            )
            .values(consumed_at=issued_at)
            .execution_options(synchronize_session=False)
        )

        code = generate_code()
        self.db.add(
            VerificationCode(
                user_id=user_id,
                code=code,
                expires_at=issued_at + timedelta(minutes=config.VERIFICATION_CODE_TTL_MINUTES),
            )
        )
        self.db.commit()

        logger.info('Issued verification code for user %s', user_id)
        self.notifier.notify(user_id, f'Your appointment verification code is {code}')

    def check_code(self, user_id: int, code: str) -> bool:
        normalized = (code or '').strip()
        if not normalized:
            return False

        checked_at = self.now()
        result = self.db.execute(
            update(VerificationCode)
            .where(
                VerificationCode.user_id == user_id,
                VerificationCode.code == normalized,
                VerificationCode.consumed_at.is_(None),
                VerificationCode.expires_at > checked_at,
            )
            .values(consumed_at=checked_at)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        accepted = result.rowcount == 1
        if not accepted:
            logger.info('Rejected verification code for user %s', user_id)
        return accepted
