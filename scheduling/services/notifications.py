import logging
import re

logger = logging.getLogger(__name__)

LEVEL_SUCCESS = 'success'
LEVEL_INFO = 'info'
LEVEL_ERROR = 'error'

_DIGIT_RUN = re.compile(r'\d{4,}')


def mask_digits(message: str) -> str:
    """Hide runs of four or more digits, e.g. verification codes."""
    return _DIGIT_RUN.sub(lambda match: '*' * len(match.group()), message)


class Notifier:
    """Fire-and-forget user notifications.

    The default implementation only writes to the log, with codes masked at
    INFO. Delivery backends (SMS, email, push) subclass it and override
    ``deliver``.
    """

    def deliver(self, user_id: int, message: str, level: str) -> None:
        logger.info('Notify user %s [%s]: %s', user_id, level, mask_digits(message))
        logger.debug('Unmasked notification for user %s: %s', user_id, message)

    def notify(self, user_id: int, message: str, level: str = LEVEL_INFO) -> None:
        try:
            self.deliver(user_id, message, level)
        except Exception:
            logger.exception('Failed to deliver notification to user %s', user_id)


default_notifier = Notifier()
