from datetime import timedelta

from conftest import NOW
from scheduling.models.verification_code import VerificationCode
from scheduling.services.verification import DatabaseVerificationService, generate_code


class RecordingNotifier:
    def __init__(self):
        self.messages = []

    def notify(self, user_id, message, level='info'):
        self.messages.append((user_id, message, level))


def _latest_code(db, user_id: int) -> str:
    return db.query(VerificationCode).filter(
        VerificationCode.user_id == user_id,
    ).order_by(VerificationCode.id.desc()).first().code


def test_generate_code_is_numeric_with_configured_length() -> None:
    code = generate_code()

    assert len(code) == 6
    assert code.isdigit()


def test_send_code_hands_code_to_notifier(db, patient) -> None:
    notifier = RecordingNotifier()
    service = DatabaseVerificationService(db, notifier=notifier, now=NOW)

    service.send_code(patient.id)

    code = _latest_code(db, patient.id)
    assert notifier.messages == [(patient.id, f'Your appointment verification code is {code}', 'info')]


def test_check_code_accepts_a_code_only_once(db, patient) -> None:
    service = DatabaseVerificationService(db, notifier=RecordingNotifier(), now=NOW)
    service.send_code(patient.id)
    code = _latest_code(db, patient.id)

    assert service.check_code(patient.id, code) is True
    assert service.check_code(patient.id, code) is False


def test_check_code_rejects_other_users_and_wrong_codes(db, patient, other_patient) -> None:
    service = DatabaseVerificationService(db, notifier=RecordingNotifier(), now=NOW)
    service.send_code(patient.id)
    code = _latest_code(db, patient.id)

    assert service.check_code(other_patient.id, code) is False
    assert service.check_code(patient.id, '') is False
    assert service.check_code(patient.id, 'x' + code[1:]) is False
    assert service.check_code(patient.id, code) is True


def test_check_code_rejects_expired_code(db, patient) -> None:
    DatabaseVerificationService(db, notifier=RecordingNotifier(), now=NOW).send_code(patient.id)
    code = _latest_code(db, patient.id)

    later = DatabaseVerificationService(db, notifier=RecordingNotifier(), now=NOW + timedelta(minutes=11))

    assert later.check_code(patient.id, code) is False


def test_resending_invalidates_previous_code(db, patient) -> None:
    service = DatabaseVerificationService(db, notifier=RecordingNotifier(), now=NOW)
    service.send_code(patient.id)
    first = _latest_code(db, patient.id)
    service.send_code(patient.id)
    second = _latest_code(db, patient.id)

    if first != second:
        assert service.check_code(patient.id, first) is False
    assert service.check_code(patient.id, second) is True
