"""Shared fixtures: app, database rows, controllable clock and broadcaster."""
from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token
from sqlalchemy.exc import OperationalError

from edutend import create_app, db
from edutend.container import build_container
from edutend.models.course import Course
from edutend.models.user import User, UserRole
from edutend.services.actor import Actor


class FakeClock:
    """Clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def clock(app):
    clock = FakeClock(datetime(2026, 3, 2, 9, 0, 0))
    app.extensions['edutend.clock'] = clock
    return clock


@pytest.fixture
def broadcaster(app):
    return app.extensions['edutend.broadcaster']


@pytest.fixture
def events(broadcaster):
    """Subscriber queue that sees every event published during the test."""
    return broadcaster.subscribe()


@pytest.fixture
def container(app, clock, broadcaster):
    return build_container(
        session=db.session,
        broadcaster=broadcaster,
        config=app.config,
        clock=clock
    )


@pytest.fixture
def manager(container):
    return container.session_manager


@pytest.fixture
def attendance(container):
    return container.attendance_service


def _make_user(email, name, role, student_number=None):
    user = User(email=email, name=name, role=role, student_number=student_number)
    user.set_password('password123')
    return user.save()


@pytest.fixture
def admin(app):
    return _make_user('admin@example.com', 'Admin User', UserRole.ADMIN)


@pytest.fixture
def lecturer(app):
    return _make_user('lecturer@example.com', 'Lecturer A', UserRole.LECTURER)


@pytest.fixture
def other_lecturer(app):
    return _make_user('lecturer.b@example.com', 'Lecturer B', UserRole.LECTURER)


@pytest.fixture
def student(app):
    return _make_user('stu.a@example.com', 'Student A', UserRole.STUDENT, 'STU-A')


@pytest.fixture
def outsider(app):
    """Student who is not enrolled in the course."""
    return _make_user('stu.b@example.com', 'Student B', UserRole.STUDENT, 'STU-B')


@pytest.fixture
def course(app, lecturer, student):
    course = Course(code='cs101', name='Introduction to Computing', lecturer_id=lecturer.id).save()
    course.students.append(student)
    db.session.commit()
    return course


def actor_for(user) -> Actor:
    return Actor.from_user(user)


def auth_headers(user) -> dict:
    token = create_access_token(identity=str(user.id))
    return {'Authorization': f'Bearer {token}'}


def drain(queue) -> list:
    """Pop every message currently waiting on a subscriber queue."""
    messages = []
    while not queue.empty():
        messages.append(queue.get_nowait())
    return messages


@pytest.fixture
def failing_commit(app, monkeypatch):
    """Make every commit on the request session fail; records rollbacks."""
    store = db.session()
    real_rollback = store.rollback
    rollbacks = []

    def commit():
        raise OperationalError('COMMIT', None, Exception('database is locked'))

    def rollback():
        rollbacks.append(True)
        real_rollback()

    monkeypatch.setattr(store, 'commit', commit)
    monkeypatch.setattr(store, 'rollback', rollback)
    return rollbacks
