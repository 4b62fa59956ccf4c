"""Attendance session (QR code) API endpoints."""
from flask import Blueprint, current_app, request
from edutend import limiter
from edutend.container import get_container
from edutend.utils.decorators import current_actor, lecturer_required, login_required, student_required
from edutend.utils.helpers import isoformat, success_response
from edutend.utils.validators import CreateSessionRequest, ScanRequest, Validator

sessions_bp = Blueprint('sessions', __name__)

@sessions_bp.route('', methods=['POST'])
@limiter.limit("30 per hour")
@lecturer_required
def create_session():
    """Open an attendance session and return its QR code."""
    body = CreateSessionRequest.from_json(request.get_json(silent=True))
    manager = get_container().session_manager

    qr_session, qr_image = manager.create(
        current_actor(),
        course_id=body.course_id,
        duration_minutes=body.duration_minutes,
        title=body.title,
        notes=body.notes
    )

    return success_response(
        data={
            'session': qr_session.to_dict(manager.clock()),
            'qr_image': qr_image,
            'expires_at': isoformat(qr_session.expires_at),
            'duration': body.duration_minutes
        },
        message="QR code generated successfully",
        status_code=201
    )

@sessions_bp.route('/scan', methods=['POST'])
@limiter.limit("60 per minute")
@student_required
def scan_session():
    """Validate a scanned QR code and mark the student present."""
    body = ScanRequest.from_json(request.get_json(silent=True))
    result = get_container().session_manager.validate_and_scan(body.payload, current_actor())

    return success_response(
        data=result,
        message="Attendance recorded successfully"
    )

@sessions_bp.route('/active', methods=['GET'])
@login_required
def list_active_sessions():
    """Sessions students can still scan into, optionally only one creator's."""
    manager = get_container().session_manager

    sessions = manager.list_active(
        course_id=Validator.validate_int(request.args, 'course_id', required=False),
        creator_id=Validator.validate_int(request.args, 'created_by', required=False)
    )
    now = manager.clock()

    return success_response(
        data={
            'active_sessions': [s.to_dict(now) for s in sessions],
            'count': len(sessions)
        }
    )

@sessions_bp.route('', methods=['GET'])
@login_required
def list_sessions():
    """Paginated session history."""
    actor = current_actor()
    page, per_page = Validator.validate_page(
        request.args, current_app.config['DEFAULT_PAGE_SIZE'], current_app.config['MAX_PAGE_SIZE']
    )

    result = get_container().session_manager.list_sessions(
        course_id=Validator.validate_int(request.args, 'course_id', required=False),
        state=Validator.validate_state(request.args.get('state')),
        creator_id=actor.id if actor.is_lecturer() else None,
        page=page,
        per_page=per_page
    )

    return success_response(data=result)

@sessions_bp.route('/stats', methods=['GET'])
@lecturer_required
def session_stats():
    """Session counts by state and total scans."""
    actor = current_actor()
    stats = get_container().session_manager.stats(
        course_id=Validator.validate_int(request.args, 'course_id', required=False),
        creator_id=None if actor.is_admin() else actor.id
    )

    return success_response(data=stats)

@sessions_bp.route('/<session_id>', methods=['GET'])
@login_required
def get_session(session_id):
    """Session detail with time remaining."""
    manager = get_container().session_manager
    qr_session = manager.get(session_id)

    return success_response(data={'session': qr_session.to_dict(manager.clock())})

@sessions_bp.route('/<session_id>/expire', methods=['POST'])
@lecturer_required
def expire_session(session_id):
    """Manually expire a session."""
    manager = get_container().session_manager
    qr_session = manager.expire(session_id, current_actor())

    return success_response(
        data={'session': qr_session.to_dict(manager.clock())},
        message="QR session expired successfully"
    )

@sessions_bp.route('/<session_id>/cancel', methods=['POST'])
@lecturer_required
def cancel_session(session_id):
    """Cancel a session before it runs out."""
    manager = get_container().session_manager
    qr_session = manager.cancel(session_id, current_actor())

    return success_response(
        data={'session': qr_session.to_dict(manager.clock())},
        message="QR session cancelled successfully"
    )
