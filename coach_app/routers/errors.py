"""Translation of scheduling errors into HTTP errors."""
from fastapi import HTTPException, status

from coach_app.errors import (
    AmbiguousReferenceError,
    DeliveryFailedError,
    DuplicateKeyError,
    GoneError,
    InvalidScheduleError,
    InvalidStateError,
    NotFoundError,
    PersistenceConflictError,
    SchedulerError,
)

STATUS_BY_ERROR = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    GoneError: status.HTTP_410_GONE,
    InvalidStateError: status.HTTP_409_CONFLICT,
    DuplicateKeyError: status.HTTP_409_CONFLICT,
    AmbiguousReferenceError: status.HTTP_409_CONFLICT,
    PersistenceConflictError: status.HTTP_409_CONFLICT,
    InvalidScheduleError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    DeliveryFailedError: status.HTTP_502_BAD_GATEWAY,
}


def http_error(error: SchedulerError) -> HTTPException:
    """HTTPException carrying the error's code, message and details."""
    status_code = STATUS_BY_ERROR.get(type(error), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=error.to_dict())
