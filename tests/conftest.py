import os
from datetime import date, datetime, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from scheduling.database import Base  # noqa: E402
from scheduling.models import appointment, availability_rule, booking_session, verification_code  # noqa: E402,F401
from scheduling.models.time_slot import TimeSlot  # noqa: E402
from scheduling.models.user import User  # noqa: E402

MONDAY = date(2026, 1, 5)
NOW = datetime(2026, 1, 5, 8, 0)


class MutableClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeVerifier:
    def __init__(self, valid_code: str = '123456'):
        self.valid_code = valid_code
        self.sent: list[int] = []
        self.used: set[tuple[int, str]] = set()

    def send_code(self, user_id: int) -> None:
        self.sent.append(user_id)

    def check_code(self, user_id: int, code: str) -> bool:
        if code != self.valid_code or (user_id, code) in self.used:
            return False
        self.used.add((user_id, code))
        return True


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f'sqlite:///{tmp_path / "scheduling.db"}')
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def other_db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def _add_user(db, email: str, role: str) -> User:
    user = User(email=email, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def doctor(db):
    return _add_user(db, 'doctor@clinic.example', 'doctor')


@pytest.fixture
def other_doctor(db):
    return _add_user(db, 'second.doctor@clinic.example', 'doctor')


@pytest.fixture
def patient(db):
    return _add_user(db, 'patient@example.com', 'patient')


@pytest.fixture
def other_patient(db):
    return _add_user(db, 'other.patient@example.com', 'patient')


@pytest.fixture
def make_slot(db, doctor):
    def _make_slot(
        start: time = time(9, 0),
        end: time = time(9, 30),
        slot_date: date = MONDAY,
        mode: str = 'online',
        **fields,
    ) -> TimeSlot:
        slot = TimeSlot(
            doctor_id=fields.pop('doctor_id', doctor.id),
            slot_date=slot_date,
            start_time=start,
            end_time=end,
            consultation_mode=mode,
            is_booked=fields.pop('is_booked', False),
            is_locked=fields.pop('is_locked', False),
            **fields,
        )
        db.add(slot)
        db.commit()
        db.refresh(slot)
        return slot

    return _make_slot


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def verifier():
    return FakeVerifier()
