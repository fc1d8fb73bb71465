"""Error taxonomy for course editing and the persistence round trips."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    TIMESTAMP_ORDER = "timestamp_order_violation"
    TIMESTAMP_CONFLICT = "timestamp_conflict"
    NOT_FOUND = "not_found"
    MODE_DENIED = "mode_capability_denied"
    INSUFFICIENT_POINTS = "insufficient_points"
    REMOTE_FAILURE = "remote_failure"
    INVALID_VALUE = "invalid_value"
    NO_ACTIVE_COURSE = "no_active_course"
    BUSY = "session_busy"


class AnnotationError(Exception):
    """Base class for every recoverable editing error."""

    kind: ErrorKind
    default_message = "Operation failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class TimestampOrderViolation(AnnotationError):
    kind = ErrorKind.TIMESTAMP_ORDER
    default_message = "Cannot add point: timestamp must be later than the previous point"


class TimestampConflict(AnnotationError):
    kind = ErrorKind.TIMESTAMP_CONFLICT
    default_message = "Cannot update point: timestamp conflicts with another point"


class NotFound(AnnotationError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Point not found"


class ModeCapabilityDenied(AnnotationError):
    kind = ErrorKind.MODE_DENIED
    default_message = "Points cannot be modified in testing mode"


class InsufficientPoints(AnnotationError):
    kind = ErrorKind.INSUFFICIENT_POINTS
    default_message = "Please add at least 2 points to create a course"


class RemoteFailure(AnnotationError):
    kind = ErrorKind.REMOTE_FAILURE
    default_message = "Request to the course service failed"


class InvalidValue(AnnotationError):
    kind = ErrorKind.INVALID_VALUE
    default_message = "Invalid value"


class NoActiveCourse(AnnotationError):
    kind = ErrorKind.NO_ACTIVE_COURSE
    default_message = "No course loaded for testing"


class SessionBusy(AnnotationError):
    kind = ErrorKind.BUSY
    default_message = "Another request is still in progress"
