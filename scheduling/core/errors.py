"""Domain errors raised by the scheduling services.

Every failure path in the booking core raises one of these so callers can
decide between retrying a step and aborting the flow.
"""


class SchedulingError(Exception):
    """Base class for scheduling failures."""

    code = 'scheduling_error'

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class ValidationError(SchedulingError):
    """The request is malformed."""

    code = 'validation_error'


class SlotNotFound(SchedulingError):
    """Time slot not found."""

    code = 'slot_not_found'


class SlotUnavailable(SchedulingError):
    """This slot has already been booked."""

    code = 'slot_unavailable'


class SlotLocked(SchedulingError):
    """This slot is being booked by someone else."""

    code = 'slot_locked'


class LockExpired(SchedulingError):
    """Your reservation expired, please reselect a slot."""

    code = 'lock_expired'


class LockNotHeld(SchedulingError):
    """This slot is reserved by someone else."""

    code = 'lock_not_held'


class VerificationFailed(SchedulingError):
    """The verification code is invalid or has already been used."""

    code = 'verification_failed'


class RuleNotFound(SchedulingError):
    """Availability rule not found."""

    code = 'rule_not_found'


class AppointmentNotFound(SchedulingError):
    """Appointment not found."""

    code = 'appointment_not_found'


class BookingNotFound(SchedulingError):
    """Booking session not found."""

    code = 'booking_not_found'


class InvalidTransition(SchedulingError):
    """This action is not allowed in the current state."""

    code = 'invalid_transition'


class PermissionDenied(SchedulingError):
    """You are not allowed to perform this action."""

    code = 'permission_denied'
