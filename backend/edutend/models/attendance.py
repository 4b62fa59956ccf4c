"""Attendance record model, one row per student, course and day."""
from enum import Enum
from edutend import db
from edutend.models.base import BaseModel

class AttendanceStatus(Enum):
    """Fixed set of attendance outcomes."""
    PRESENT = 'present'
    ABSENT = 'absent'
    LATE = 'late'
    EXCUSED = 'excused'

class AttendanceRecord(BaseModel):
    """Attendance record model."""
    
    __tablename__ = 'attendance_records'
    
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False)
    date = db.Column(db.Date, nullable=False)
    status = db.Column(db.Enum(AttendanceStatus), nullable=False, default=AttendanceStatus.PRESENT)
    notes = db.Column(db.String(200), nullable=True)
    
    # Who marked it, and the scan session when it came from a QR code
    marked_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=True)
    
    # Relationships
    student = db.relationship('User', foreign_keys=[student_id])
    course = db.relationship('Course')
    session = db.relationship('AttendanceSession', back_populates='records')
    
    __table_args__ = (
        db.UniqueConstraint('student_id', 'course_id', 'date', name='uq_attendance_student_course_date'),
        db.Index('ix_attendance_records_course_date', 'course_id', 'date'),
        db.Index('ix_attendance_records_student_date', 'student_id', 'date'),
    )
    
    def to_dict(self, exclude: list = None) -> dict:
        """Convert to dictionary with student and course descriptors."""
        data = super().to_dict(exclude=exclude)
        if self.student is not None:
            data['student'] = {
                'id': self.student.id,
                'name': self.student.name,
                'student_number': self.student.student_number
            }
        if self.course is not None:
            data['course'] = self.course.describe()
        return data
    
    def __repr__(self):
        return f'<AttendanceRecord {self.student_id}-{self.course_id}-{self.date}>'
