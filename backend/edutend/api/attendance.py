"""Attendance API endpoints for manual entry and course summaries."""
from flask import Blueprint, current_app, request
from edutend import limiter
from edutend.container import get_container
from edutend.utils.decorators import current_actor, lecturer_required, login_required
from edutend.utils.helpers import success_response
from edutend.utils.validators import MarkAttendanceRequest, Validator

attendance_bp = Blueprint('attendance', __name__)

@attendance_bp.route('/mark', methods=['POST'])
@limiter.limit("120 per minute")
@lecturer_required
def mark_attendance():
    """Mark or overwrite one student's attendance for a day."""
    body = MarkAttendanceRequest.from_json(request.get_json(silent=True))

    record, created = get_container().attendance_service.mark(
        current_actor(),
        student_id=body.student_id,
        course_id=body.course_id,
        on_date=body.on_date,
        status=body.status,
        notes=body.notes,
        session_id=body.session_id
    )

    return success_response(
        data={'attendance': record.to_dict()},
        message="Attendance marked successfully" if created else "Attendance updated successfully",
        status_code=201 if created else 200
    )

@attendance_bp.route('/course/<int:course_id>/summary', methods=['GET'])
@lecturer_required
def course_summary(course_id):
    """Attendance counts and rate for a course."""
    summary = get_container().attendance_service.course_summary(
        current_actor(),
        course_id,
        start_date=Validator.validate_date(request.args, 'start_date', required=False),
        end_date=Validator.validate_date(request.args, 'end_date', required=False)
    )

    return success_response(data=summary)

@attendance_bp.route('', methods=['GET'])
@login_required
def list_attendance():
    """Paginated attendance records, filtered by course, student, date and status."""
    page, per_page = _page_args()

    result = get_container().attendance_service.list_records(
        current_actor(),
        course_id=Validator.validate_int(request.args, 'course_id', required=False),
        student_id=Validator.validate_int(request.args, 'student_id', required=False),
        on_date=Validator.validate_date(request.args, 'date', required=False),
        status=Validator.validate_status(request.args.get('status')),
        page=page,
        per_page=per_page
    )

    return success_response(data=result)

@attendance_bp.route('/course/<int:course_id>', methods=['GET'])
@lecturer_required
def course_attendance(course_id):
    """Attendance records for one course, optionally for one day."""
    page, per_page = _page_args()

    result = get_container().attendance_service.list_records(
        current_actor(),
        course_id=course_id,
        on_date=Validator.validate_date(request.args, 'date', required=False),
        page=page,
        per_page=per_page
    )

    return success_response(data=result)

@attendance_bp.route('/student/<int:student_id>', methods=['GET'])
@login_required
def student_attendance(student_id):
    """A student's attendance history and counts over a date range."""
    page, per_page = _page_args()

    result = get_container().attendance_service.student_history(
        current_actor(),
        student_id,
        course_id=Validator.validate_int(request.args, 'course_id', required=False),
        start_date=Validator.validate_date(request.args, 'start_date', required=False),
        end_date=Validator.validate_date(request.args, 'end_date', required=False),
        page=page,
        per_page=per_page
    )

    return success_response(data=result)

def _page_args():
    return Validator.validate_page(
        request.args, current_app.config['DEFAULT_PAGE_SIZE'], current_app.config['MAX_PAGE_SIZE']
    )
