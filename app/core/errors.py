# app/core/errors.py
from __future__ import annotations

from typing import Any, List, Optional

from fastapi import HTTPException, status


class SchedulingError(Exception):
    """
    Base class for every error the scheduling core raises.

    `code` is a short machine-readable identifier that routers return as `detail`.
    """

    http_status: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "scheduling_error"

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None):
        self.code = code or self.default_code
        self.message = message or self.code
        super().__init__(self.message)

    def to_detail(self) -> Any:
        if self.message == self.code:
            return self.code
        return {"error": self.code, "message": self.message}


class ScheduleValidationError(SchedulingError):
    """Malformed or out-of-range input that schema validation cannot catch."""

    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "validation_error"


class ConflictError(SchedulingError):
    """
    Overlapping schedule definitions.
    `conflicts` holds one dict per conflicting definition (id, title, time_range).
    """

    http_status = status.HTTP_409_CONFLICT
    default_code = "schedule_conflict"

    def __init__(
        self,
        code: Optional[str] = None,
        message: Optional[str] = None,
        conflicts: Optional[List[dict]] = None,
    ):
        super().__init__(code, message)
        self.conflicts = conflicts or []

    def to_detail(self) -> Any:
        return {
            "error": self.code,
            "message": self.message,
            "conflicts": self.conflicts,
        }


class NotFoundError(SchedulingError):
    http_status = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class AccessDeniedError(SchedulingError):
    http_status = status.HTTP_403_FORBIDDEN
    default_code = "access_denied"


class StateConflictError(SchedulingError):
    """Slot lifecycle transition attempted from a state that does not allow it."""

    http_status = status.HTTP_409_CONFLICT
    default_code = "invalid_slot_state"


class HasActiveBookingsError(SchedulingError):
    http_status = status.HTTP_409_CONFLICT
    default_code = "has_active_bookings"


class InternalError(SchedulingError):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "internal_error"


def as_http_exception(exc: SchedulingError) -> HTTPException:
    """
    Map a domain error to the HTTPException the routers raise.
    Internal errors never expose their message.
    """
    if isinstance(exc, InternalError):
        return HTTPException(status_code=exc.http_status, detail="internal_error")
    return HTTPException(status_code=exc.http_status, detail=exc.to_detail())


__all__ = [
    "SchedulingError",
    "ScheduleValidationError",
    "ConflictError",
    "NotFoundError",
    "AccessDeniedError",
    "StateConflictError",
    "HasActiveBookingsError",
    "InternalError",
    "as_http_exception",
]
