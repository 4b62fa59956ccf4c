"""Models package with all models."""
from .base import BaseModel
from .user import User, UserRole
from .course import Course, enrollments
from .attendance_session import AttendanceSession, SessionState
from .attendance import AttendanceRecord, AttendanceStatus

__all__ = [
    'BaseModel', 'User', 'UserRole',
    'Course', 'enrollments',
    'AttendanceSession', 'SessionState',
    'AttendanceRecord', 'AttendanceStatus'
]
