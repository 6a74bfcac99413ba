from datetime import datetime, timezone
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from scheduling.core import config


engine = create_engine(config.DATABASE_URL, echo=config.DATABASE_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_time_slot_schema_checked = False
_appointment_schema_checked = False


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_time_slot_schema() -> None:
    global _time_slot_schema_checked

    if _time_slot_schema_checked:
        return

    with _schema_lock:
        if _time_slot_schema_checked:
            return

        inspector = inspect(engine)

        if 'time_slots' not in inspector.get_table_names():
            _time_slot_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('time_slots')}
        migration_steps = [
            ('is_locked', 'ALTER TABLE time_slots ADD COLUMN is_locked BOOLEAN DEFAULT FALSE'),
            ('locked_by', 'ALTER TABLE time_slots ADD COLUMN locked_by INTEGER'),
            ('locked_until', 'ALTER TABLE time_slots ADD COLUMN locked_until TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_time_slots_doctor_date_start_mode '
                    'ON time_slots(doctor_id, slot_date, start_time, consultation_mode)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_time_slots_booked_locked ON time_slots(is_booked, is_locked)')
            )

        _time_slot_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('otp_verified', 'ALTER TABLE appointments ADD COLUMN otp_verified BOOLEAN DEFAULT FALSE'),
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_slot ON appointments(slot_id)')
            )
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_status '
                    'ON appointments(doctor_id, status, appointment_date)'
                )
            )

        _appointment_schema_checked = True
