"""Patient booking flow.

A booking session moves through::

    selecting_slot -> details_entry -> verification -> confirmed

``cancel`` is available from every state except ``confirmed`` and always
releases the held slot. Whenever the held lock is found to have lapsed the
session falls back to ``selecting_slot`` and ``LockExpired`` is raised; the
flow never retries on its own.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from scheduling.core import config, errors
from scheduling.database import utcnow
from scheduling.models.appointment import Appointment, STATUS_BOOKED
from scheduling.models.booking_session import (
    BookingSession,
    STATE_CONFIRMED,
    STATE_DETAILS_ENTRY,
    STATE_SELECTING_SLOT,
    STATE_VERIFICATION,
)
from scheduling.models.time_slot import TimeSlot
from scheduling.services import slot_locks
from scheduling.services.notifications import LEVEL_ERROR, LEVEL_SUCCESS, Notifier, default_notifier
from scheduling.services.verification import VerificationService

logger = logging.getLogger(__name__)


class BookingFlow:
    def __init__(
        self,
        db: Session,
        verifier: VerificationService,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.verifier = verifier
        self.notifier = notifier or default_notifier
        self.clock = clock

    def start(self, patient_id: int) -> BookingSession:
        booking = BookingSession(patient_id=patient_id, state=STATE_SELECTING_SLOT)
        self.db.add(booking)
        self.db.commit()
        self.db.refresh(booking)
        logger.info('Patient %s started booking session %s', patient_id, booking.id)
        return booking

    def get(self, booking_id: int, patient_id: int) -> BookingSession:
        booking = self.db.query(BookingSession).filter(BookingSession.id == booking_id).first()
        if booking is None:
            raise errors.BookingNotFound()
        if booking.patient_id != patient_id:
            raise errors.PermissionDenied('This booking belongs to another patient.')
        return booking

    def held_slot(self, booking: BookingSession) -> TimeSlot | None:
        if booking.slot_id is None:
            return None
        return self.db.query(TimeSlot).filter(TimeSlot.id == booking.slot_id).populate_existing().first()

    def select_slot(self, booking: BookingSession, slot_id: int) -> BookingSession:
        self._require_state(booking, STATE_SELECTING_SLOT)

        slot = slot_locks.acquire(self.db, slot_id, booking.patient_id, now=self.clock())

        booking.slot_id = slot.id
        booking.state = STATE_DETAILS_ENTRY
        self.db.commit()
        logger.info('Booking %s holds slot %s', booking.id, slot.id)
        self.notifier.notify(
            booking.patient_id,
            f'Slot reserved for {config.SLOT_LOCK_MINUTES} minutes',
            LEVEL_SUCCESS,
        )
        return booking

    def submit_details(self, booking: BookingSession, symptoms: str) -> BookingSession:
        self._require_state(booking, STATE_DETAILS_ENTRY)
        self._check_hold(booking)

        normalized = (symptoms or '').strip()
        if not normalized:
            raise errors.ValidationError('Please describe your symptoms or reason for consultation.')
        if len(normalized) > config.MAX_SYMPTOMS_LENGTH:
            raise errors.ValidationError(f'Symptoms must be {config.MAX_SYMPTOMS_LENGTH} characters or fewer.')

        booking.symptoms = normalized
        booking.state = STATE_VERIFICATION
        self.db.commit()
        logger.info('Booking %s moved to verification', booking.id)

        self.verifier.send_code(booking.patient_id)
        return booking

    def resend_code(self, booking: BookingSession) -> BookingSession:
        self._require_state(booking, STATE_VERIFICATION)
        self._check_hold(booking)

        self.verifier.send_code(booking.patient_id)
        return booking

    def verify(self, booking: BookingSession, code: str) -> Appointment:
        self._require_state(booking, STATE_VERIFICATION)
        self._check_hold(booking)

        if not self.verifier.check_code(booking.patient_id, code):
            raise errors.VerificationFailed()

        try:
            slot = slot_locks.confirm(self.db, booking.slot_id, booking.patient_id, now=self.clock(), commit=False)
        except (errors.LockExpired, errors.LockNotHeld, errors.SlotUnavailable) as exc:
            self._reset(booking)
            self.notifier.notify(booking.patient_id, exc.message, LEVEL_ERROR)
            raise

        appointment = Appointment(
            doctor_id=slot.doctor_id,
            patient_id=booking.patient_id,
            slot_id=slot.id,
            appointment_date=slot.slot_date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            consultation_mode=slot.consultation_mode,
            status=STATUS_BOOKED,
            otp_verified=True,
            notes=booking.symptoms,
        )
        self.db.add(appointment)
        self.db.flush()

        booking.appointment_id = appointment.id
        booking.state = STATE_CONFIRMED
        self.db.commit()
        self.db.refresh(appointment)

        logger.info('Booking %s confirmed as appointment %s', booking.id, appointment.id)
        self.notifier.notify(booking.patient_id, 'Appointment confirmed', LEVEL_SUCCESS)
        return appointment

    def cancel(self, booking: BookingSession, reason: str = 'cancelled') -> BookingSession:
        if booking.state == STATE_CONFIRMED:
            raise errors.InvalidTransition('A confirmed booking cannot be abandoned.')

        self._reset(booking)
        logger.info('Booking %s returned to slot selection (%s)', booking.id, reason)
        return booking

    def _require_state(self, booking: BookingSession, *states: str) -> None:
        if booking.state not in states:
            raise errors.InvalidTransition(
                f'Booking is in state {booking.state}, expected {" or ".join(states)}.'
            )

    def _check_hold(self, booking: BookingSession) -> None:
        slot = self.held_slot(booking)
        if slot is not None and slot.lock_active(self.clock()) and slot.locked_by == booking.patient_id:
            return

        logger.info('Booking %s lost its hold on slot %s', booking.id, booking.slot_id)
        self._reset(booking)
        raise errors.LockExpired()

    def _reset(self, booking: BookingSession) -> None:
        if booking.slot_id is not None:
            slot_locks.release(self.db, booking.slot_id, booking.patient_id, now=self.clock())

        booking.slot_id = None
        booking.symptoms = None
        booking.state = STATE_SELECTING_SLOT
        self.db.commit()
