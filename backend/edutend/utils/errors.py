"""Domain errors raised by the attendance services."""
from typing import Any, Dict, Optional


class EdutendError(Exception):
    """Base exception for business rule violations."""

    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: Optional[str] = None, context: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.context = context


class ValidationError(EdutendError):
    """Raised when input data is invalid."""

    default_message = "Invalid request data"


class MalformedPayload(EdutendError):
    default_message = "Invalid QR code format"


class SessionNotFound(EdutendError):
    status_code = 404
    default_message = "QR session not found"


class SessionExpired(EdutendError):
    status_code = 410
    default_message = "QR code has expired"


class SessionNotActive(EdutendError):
    status_code = 409
    default_message = "QR session is not active"


class NotEnrolled(EdutendError):
    status_code = 403
    default_message = "You are not enrolled in this course"


class Forbidden(EdutendError):
    status_code = 403
    default_message = "Access denied"


class StudentNotFound(EdutendError):
    status_code = 404
    default_message = "Student not found"


class CourseNotFound(EdutendError):
    status_code = 404
    default_message = "Course not found"


class InvalidStatus(EdutendError):
    default_message = "Status must be present, absent, late, or excused"


class StoreUnavailable(EdutendError):
    """Wraps any persistence failure. The only error a caller may retry."""

    status_code = 503
    default_message = "Attendance store is unavailable"
