"""Seed data for local development."""
from typing import Dict, Tuple
from edutend import db
from edutend.models.user import User, UserRole
from edutend.models.course import Course

class SeedService:
    """Creates demo accounts and a course when they do not exist yet."""

    DEMO_USERS = [
        ('admin', 'System Administrator', 'admin@edutend.edu', 'admin123456', UserRole.ADMIN, None),
        ('lecturer', 'Dr. Ada Mensah', 'lecturer@edutend.edu', 'lecturer123', UserRole.LECTURER, None),
        ('student', 'Kofi Boateng', 'student@edutend.edu', 'student123', UserRole.STUDENT, 'STU0001'),
    ]

    @classmethod
    def seed_all(cls) -> Dict[str, Tuple[str, str]]:
        """Seed users and a course; returns login hints per role."""
        users = {}
        credentials = {}

        for key, name, email, password, role, student_number in cls.DEMO_USERS:
            user = User.query.filter_by(email=email).first()
            if not user:
                user = User(
                    email=email,
                    name=name,
                    role=role,
                    student_number=student_number
                )
                user.set_password(password)
                db.session.add(user)
            users[key] = user
            credentials[key.title()] = (email, password)

        db.session.flush()

        course = Course.query.filter_by(code='CS101').first()
        if not course:
            course = Course(
                code='CS101',
                name='Introduction to Computing',
                lecturer_id=users['lecturer'].id
            )
            db.session.add(course)
            db.session.flush()

        if users['student'] not in course.students.all():
            course.students.append(users['student'])

        db.session.commit()
        return credentials
