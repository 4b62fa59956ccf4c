"""Attendance session with QR codes."""
import secrets
from datetime import datetime
from enum import Enum
from edutend import db
from edutend.models.base import BaseModel
from edutend.utils.helpers import isoformat

class SessionState(Enum):
    """Lifecycle of a session. Expired and Cancelled are terminal."""
    ACTIVE = 'active'
    EXPIRED = 'expired'
    CANCELLED = 'cancelled'

class AttendanceSession(BaseModel):
    """Instructor-opened window during which students scan in."""
    
    __tablename__ = 'attendance_sessions'
    
    session_id = db.Column(db.String(64), unique=True, nullable=False, index=True)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(100), nullable=False)
    notes = db.Column(db.String(200), nullable=True)
    state = db.Column(db.Enum(SessionState), nullable=False, default=SessionState.ACTIVE, index=True)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    
    # Stats
    scan_count = db.Column(db.Integer, nullable=False, default=0)
    last_scanned_at = db.Column(db.DateTime, nullable=True)
    
    # Data embedded in the QR image; never rewritten after creation
    payload = db.Column(db.Text, nullable=False)
    
    # Relationships
    course = db.relationship('Course')
    creator = db.relationship('User')
    records = db.relationship('AttendanceRecord', back_populates='session', lazy='dynamic')
    
    __table_args__ = (
        db.Index('ix_attendance_sessions_course_state', 'course_id', 'state'),
    )
    
    @staticmethod
    def generate_session_id() -> str:
        """Generate unique opaque session identifier."""
        return secrets.token_urlsafe(16)
    
    def is_expired(self, now: datetime) -> bool:
        """Check if session is expired."""
        return now > self.expires_at
    
    def is_terminal(self) -> bool:
        return self.state != SessionState.ACTIVE
    
    def effective_state(self, now: datetime) -> SessionState:
        """State as observed at `now`, regardless of whether it was persisted."""
        if self.state == SessionState.ACTIVE and self.is_expired(now):
            return SessionState.EXPIRED
        return self.state
    
    def time_remaining(self, now: datetime) -> int:
        """Seconds left before expiry, 0 once expired or closed."""
        if self.effective_state(now) != SessionState.ACTIVE:
            return 0
        return max(0, int((self.expires_at - now).total_seconds()))
    
    def to_dict(self, now: datetime = None):
        """Convert to dictionary."""
        state = self.effective_state(now) if now else self.state
        data = {
            'id': self.id,
            'session_id': self.session_id,
            'course_id': self.course_id,
            'created_by': self.created_by,
            'title': self.title,
            'notes': self.notes,
            'state': state.value,
            'created_at': isoformat(self.created_at),
            'expires_at': isoformat(self.expires_at),
            'scan_count': self.scan_count,
            'last_scanned_at': isoformat(self.last_scanned_at),
            'payload': self.payload
        }
        if now is not None:
            data['time_remaining_seconds'] = self.time_remaining(now)
        if self.course is not None:
            data['course'] = self.course.describe()
        return data
