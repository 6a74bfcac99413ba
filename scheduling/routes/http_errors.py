from fastapi import HTTPException, status

from scheduling.core import errors

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'

ERROR_STATUS_CODES = {
    errors.ValidationError: status.HTTP_400_BAD_REQUEST,
    errors.VerificationFailed: status.HTTP_400_BAD_REQUEST,
    errors.PermissionDenied: status.HTTP_403_FORBIDDEN,
    errors.LockNotHeld: status.HTTP_403_FORBIDDEN,
    errors.SlotNotFound: status.HTTP_404_NOT_FOUND,
    errors.RuleNotFound: status.HTTP_404_NOT_FOUND,
    errors.AppointmentNotFound: status.HTTP_404_NOT_FOUND,
    errors.BookingNotFound: status.HTTP_404_NOT_FOUND,
    errors.SlotUnavailable: status.HTTP_409_CONFLICT,
    errors.SlotLocked: status.HTTP_409_CONFLICT,
    errors.InvalidTransition: status.HTTP_409_CONFLICT,
    errors.LockExpired: status.HTTP_410_GONE,
}


def to_http_exception(exc: errors.SchedulingError) -> HTTPException:
    status_code = ERROR_STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(
        status_code=status_code,
        detail={'code': exc.code, 'message': exc.message},
    )


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )
