"""Course model with student enrollments."""
from edutend import db
from edutend.models.base import BaseModel
from edutend.utils.helpers import utcnow

enrollments = db.Table(
    'enrollments',
    db.Column('course_id', db.Integer, db.ForeignKey('courses.id'), primary_key=True),
    db.Column('student_id', db.Integer, db.ForeignKey('users.id'), primary_key=True),
    db.Column('enrolled_at', db.DateTime, default=utcnow, nullable=False)
)

class Course(BaseModel):
    """Course taught by one lecturer."""
    
    __tablename__ = 'courses'
    
    code = db.Column(db.String(10), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    lecturer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    
    # Relationships
    lecturer = db.relationship('User', back_populates='courses_taught')
    students = db.relationship('User', secondary=enrollments, lazy='dynamic')
    
    def __init__(self, **kwargs):
        if kwargs.get('code'):
            kwargs['code'] = kwargs['code'].strip().upper()
        super().__init__(**kwargs)
    
    def describe(self) -> dict:
        """Short descriptor shown next to sessions and scans."""
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name
        }
    
    def __repr__(self):
        return f'<Course {self.code}>'
