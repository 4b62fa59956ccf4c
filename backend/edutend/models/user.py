"""User model for role-based authorization."""
from enum import Enum
from werkzeug.security import generate_password_hash
from edutend import db
from edutend.models.base import BaseModel

class UserRole(Enum):
    """User roles enumeration."""
    ADMIN = 'admin'
    LECTURER = 'lecturer'
    STUDENT = 'student'

class User(BaseModel):
    """User model for all system users."""
    
    __tablename__ = 'users'
    
    # Basic Information
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(50), nullable=False)
    student_number = db.Column(db.String(50), unique=True, nullable=True, index=True)
    
    # Role
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.STUDENT)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    
    # Relationships
    courses_taught = db.relationship('Course', back_populates='lecturer', lazy='dynamic')
    
    def set_password(self, password: str) -> None:
        """Set user password with hashing."""
        self.password_hash = generate_password_hash(password)
    
    def to_dict(self, exclude: list = None) -> dict:
        """Convert to dictionary excluding sensitive data."""
        default_exclude = ['password_hash']
        exclude = (exclude or []) + default_exclude
        return super().to_dict(exclude=exclude)
    
    def __repr__(self) -> str:
        return f'<User {self.email}>'
