"""Custom decorators for authorization."""
from functools import wraps
from flask import g
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from edutend import db
from edutend.models.user import User
from edutend.services.actor import Actor
from edutend.utils.helpers import error_response

def _load_actor():
    """Resolve the JWT identity to an active user, caching it on `g`."""
    identity = get_jwt_identity()
    try:
        user = db.session.get(User, int(identity))
    except (TypeError, ValueError):
        user = None

    if not user or not user.is_active:
        return None

    g.current_actor = Actor.from_user(user)
    return g.current_actor

def current_actor() -> Actor:
    """Actor resolved by one of the decorators below."""
    return g.current_actor

def login_required(f):
    """Decorator to require any authenticated, active user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        verify_jwt_in_request()
        if _load_actor() is None:
            return error_response("User not found", 401)

        return f(*args, **kwargs)
    return decorated_function

def lecturer_required(f):
    """Decorator to require lecturer role or higher."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        verify_jwt_in_request()
        actor = _load_actor()

        if actor is None:
            return error_response("User not found", 401)

        if not (actor.is_lecturer() or actor.is_admin()):
            return error_response("Lecturer access required", 403)

        return f(*args, **kwargs)
    return decorated_function

def student_required(f):
    """Decorator to require student role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        verify_jwt_in_request()
        actor = _load_actor()

        if actor is None:
            return error_response("User not found", 401)

        if not actor.is_student():
            return error_response("Student access required", 403)

        return f(*args, **kwargs)
    return decorated_function
