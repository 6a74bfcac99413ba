"""Roll the slot horizon forward and clear expired slot locks.

Safe to run repeatedly, e.g. from cron once a day.

Usage:
    python -m scheduling.maintenance
"""
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from scheduling.core import config
from scheduling.database import SessionLocal
from scheduling.services import slot_generator, slot_locks

logger = logging.getLogger(__name__)


def run_maintenance(db) -> tuple[int, int]:
    created = slot_generator.roll_horizon(db)
    swept = slot_locks.sweep_expired_locks(db)
    return created, swept


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL)

    db = SessionLocal()
    try:
        created, swept = run_maintenance(db)
    except SQLAlchemyError:
        logger.exception('Slot maintenance failed. Check DATABASE_URL and Postgres credentials.')
        sys.exit(1)
    finally:
        db.close()

    print(f'Created {created} slots, cleared {swept} expired locks.')


if __name__ == "__main__":
    main()
