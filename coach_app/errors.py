"""
Scheduling error taxonomy.

Every error carries a machine-readable ``code``, a human message and a
``details`` mapping, so the REST layer and the function-calling tools can
render the same failure the same way.
"""

from typing import Any, Dict, List, Optional


class SchedulerError(Exception):
    """Base exception for notification scheduling errors"""

    code = "SCHEDULER_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(SchedulerError):
    """No notification with the given id (or none visible to the user)."""

    code = "NOT_FOUND"


class GoneError(SchedulerError):
    """The notification exists but has been soft-deleted."""

    code = "GONE"


class InvalidStateError(SchedulerError):
    """The operation is not legal for the notification's current status."""

    code = "INVALID_STATE"


class AmbiguousReferenceError(SchedulerError):
    """A human reference matched more than one active notification."""

    code = "AMBIGUOUS"

    def __init__(self, message: str, candidates: List[Dict[str, Any]]):
        super().__init__(message, {"candidates": candidates})
        self.candidates = candidates


class DeliveryFailedError(SchedulerError):
    """The delivery gateway rejected or failed to send a notification."""

    code = "DELIVERY_FAILED"


class PersistenceConflictError(SchedulerError):
    """A conditional update lost a race against a concurrent writer."""

    code = "PERSISTENCE_CONFLICT"


class DuplicateKeyError(SchedulerError):
    """A uniqueness key (e.g. slug) is already taken by an active notification."""

    code = "CONFLICT"


class InvalidScheduleError(SchedulerError):
    """Input rejected before touching the store (past time, bad snooze length...)."""

    code = "VALIDATION_ERROR"
