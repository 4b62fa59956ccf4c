"""Validation of request bodies before they reach the services."""
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional, Tuple

from edutend.models.attendance import AttendanceStatus
from edutend.models.attendance_session import SessionState
from edutend.services.attendance_service import parse_status
from edutend.utils.errors import ValidationError

class Validator:
    """Validation helper class."""

    @staticmethod
    def require_body(data: Any) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return data

    @staticmethod
    def validate_int(data: Dict, field: str, required: bool = True) -> Optional[int]:
        """Accept ints and integral strings; reject booleans and fractions."""
        value = data.get(field)
        if value is None or value == '':
            if required:
                raise ValidationError(f"Missing required field: {field}")
            return None

        if isinstance(value, bool):
            raise ValidationError(f"{field} must be an integer")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                pass

        raise ValidationError(f"{field} must be an integer")

    @staticmethod
    def validate_page(args: Dict, default_size: int, max_size: int) -> Tuple[int, int]:
        """Page number and clamped page size from query arguments."""
        page = Validator.validate_int(args, 'page', required=False) or 1
        per_page = Validator.validate_int(args, 'per_page', required=False) or default_size
        return max(1, page), max(1, min(per_page, max_size))

    @staticmethod
    def validate_text(data: Dict, field: str, max_length: int) -> Optional[str]:
        value = data.get(field)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValidationError(f"{field} must be a string")

        value = value.strip()
        if len(value) > max_length:
            raise ValidationError(f"{field} cannot be more than {max_length} characters")
        return value or None

    @staticmethod
    def validate_date(data: Dict, field: str, required: bool = True) -> Optional[date]:
        value = data.get(field)
        if value is None or value == '':
            if required:
                raise ValidationError(f"Missing required field: {field}")
            return None

        try:
            # Time of day, if any, is dropped
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")

    @staticmethod
    def validate_status(value: Optional[str]) -> Optional[AttendanceStatus]:
        if value is None or value == '':
            return None
        return parse_status(value)

    @staticmethod
    def validate_state(value: Optional[str]) -> Optional[SessionState]:
        if value is None or value == '':
            return None
        try:
            return SessionState(value.strip().lower())
        except ValueError:
            raise ValidationError("State must be active, expired, or cancelled")


@dataclass(frozen=True)
class CreateSessionRequest:
    course_id: int
    duration_minutes: int
    title: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> 'CreateSessionRequest':
        data = Validator.require_body(data)
        return cls(
            course_id=Validator.validate_int(data, 'course_id'),
            duration_minutes=Validator.validate_int(data, 'duration_minutes'),
            title=Validator.validate_text(data, 'title', 100),
            notes=Validator.validate_text(data, 'notes', 200)
        )


@dataclass(frozen=True)
class ScanRequest:
    payload: str

    @classmethod
    def from_json(cls, data: Any) -> 'ScanRequest':
        data = Validator.require_body(data)
        payload = data.get('payload')
        if not isinstance(payload, str) or not payload.strip():
            raise ValidationError("QR code data is required")
        return cls(payload=payload)


@dataclass(frozen=True)
class MarkAttendanceRequest:
    student_id: int
    course_id: int
    on_date: date
    status: AttendanceStatus
    notes: Optional[str] = None
    session_id: Optional[str] = None

    @classmethod
    def from_json(cls, data: Any) -> 'MarkAttendanceRequest':
        data = Validator.require_body(data)

        if data.get('status') is None:
            raise ValidationError("Missing required field: status")
        status = parse_status(data['status'])

        session_id = data.get('session_id')
        if session_id is not None and not isinstance(session_id, str):
            raise ValidationError("session_id must be a string")

        return cls(
            student_id=Validator.validate_int(data, 'student_id'),
            course_id=Validator.validate_int(data, 'course_id'),
            on_date=Validator.validate_date(data, 'date'),
            status=status,
            notes=Validator.validate_text(data, 'notes', 200),
            session_id=session_id or None
        )
