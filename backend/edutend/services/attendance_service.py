"""Attendance marking: one record per student, course and day."""
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query

from edutend.models.attendance import AttendanceRecord, AttendanceStatus
from edutend.models.attendance_session import AttendanceSession
from edutend.models.course import Course
from edutend.models.user import User, UserRole
from edutend.services.actor import Actor
from edutend.services.base import BaseService
from edutend.services.broadcast_service import ATTENDANCE_MARKED
from edutend.utils.errors import (
    CourseNotFound, Forbidden, InvalidStatus, SessionNotFound, StudentNotFound, ValidationError
)

logger = logging.getLogger(__name__)


def parse_status(value: Any) -> AttendanceStatus:
    """Map a raw status onto the fixed enumeration."""
    if isinstance(value, AttendanceStatus):
        return value
    try:
        return AttendanceStatus(str(value).strip().lower())
    except ValueError:
        raise InvalidStatus()


class AttendanceService(BaseService):
    """Creates or overwrites attendance records.

    Records are keyed by (student, course, date). A second mark for the same
    key overwrites status, notes, actor and session in place; no history is
    kept. Concurrent marks race on the unique constraint and the last write
    wins.
    """

    def mark(
        self,
        actor: Actor,
        student_id: int,
        course_id: int,
        on_date: date,
        status: Any,
        notes: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> Tuple[AttendanceRecord, bool]:
        """Manual entry by the course lecturer or an administrator.

        Returns the stored record and whether it was newly created.
        """
        status = parse_status(status)

        with self.store('marking attendance'):
            course = self.session.get(Course, course_id)
            if course is None:
                raise CourseNotFound()

            if not (actor.is_admin() or course.lecturer_id == actor.id):
                raise Forbidden("You can only mark attendance for your own courses")

            student = self.session.get(User, student_id)
            if student is None or student.role != UserRole.STUDENT:
                raise StudentNotFound()

            session_pk = None
            if session_id is not None:
                qr_session = self.session.query(AttendanceSession).filter_by(session_id=session_id).first()
                if qr_session is None:
                    raise SessionNotFound()
                if qr_session.course_id != course.id:
                    raise ValidationError("Session belongs to a different course")
                session_pk = qr_session.id

            record, created = self.upsert(
                student_id=student.id,
                course_id=course.id,
                on_date=on_date,
                status=status,
                notes=notes,
                marked_by=actor.id,
                session_pk=session_pk
            )

        logger.info(
            f"Attendance {'marked' if created else 'updated'}: student {student.id} "
            f"course {course.id} {on_date.isoformat()} -> {status.value}"
        )
        self.emit_marked(record)
        return record, created

    def upsert(
        self,
        *,
        student_id: int,
        course_id: int,
        on_date: date,
        status: AttendanceStatus,
        notes: Optional[str],
        marked_by: int,
        session_pk: Optional[int],
        commit: bool = True
    ) -> Tuple[AttendanceRecord, bool]:
        """Insert or overwrite the record for the triple.

        Callers are responsible for authorization. With ``commit=False`` the
        change is only flushed, the insert runs in a savepoint, and the caller
        commits it together with its own writes; the caller's transaction must
        already hold a write at that point.
        """
        record = self._find(student_id, course_id, on_date)
        created = record is None

        if created:
            record = AttendanceRecord(
                student_id=student_id,
                course_id=course_id,
                date=on_date,
                status=status,
                notes=notes,
                marked_by=marked_by,
                session_id=session_pk
            )
            try:
                if commit:
                    self.session.add(record)
                    self.session.commit()
                    return record, True
                with self.session.begin_nested():
                    self.session.add(record)
            except IntegrityError:
                # Lost the insert race; overwrite the winner instead
                if commit:
                    self.session.rollback()
                record = self._find(student_id, course_id, on_date)
                if record is None:
                    raise
                created = False

        if not created:
            record.status = status
            record.notes = notes
            record.marked_by = marked_by
            record.session_id = session_pk

        if commit:
            self.session.commit()
        else:
            self.session.flush()
        return record, created

    def emit_marked(self, record: AttendanceRecord) -> None:
        self.emit(ATTENDANCE_MARKED, {
            'recordId': record.id,
            'studentId': record.student_id,
            'courseId': record.course_id,
            'date': record.date.isoformat(),
            'status': record.status.value
        })

    # =================== READS ===================

    def list_records(
        self,
        actor: Actor,
        course_id: Optional[int] = None,
        student_id: Optional[int] = None,
        on_date: Optional[date] = None,
        status: Optional[AttendanceStatus] = None,
        page: int = 1,
        per_page: int = 10
    ) -> Dict[str, Any]:
        """Newest-first page of the records the actor may see."""
        with self.store('listing attendance'):
            query = self.session.query(AttendanceRecord)

            if course_id is not None:
                course = self.session.get(Course, course_id)
                if course is None:
                    raise CourseNotFound()
                if actor.is_lecturer() and course.lecturer_id != actor.id:
                    raise Forbidden("You can only view attendance for your own courses")
                query = query.filter(AttendanceRecord.course_id == course.id)

            query = self._visible_to(query, actor)
            if student_id is not None:
                query = query.filter(AttendanceRecord.student_id == student_id)
            if on_date is not None:
                query = query.filter(AttendanceRecord.date == on_date)
            if status is not None:
                query = query.filter(AttendanceRecord.status == status)

            records, pagination = self.paginate(self._newest_first(query), page, per_page)

            return {
                'attendance': [record.to_dict() for record in records],
                'pagination': pagination
            }

    def student_history(
        self,
        actor: Actor,
        student_id: int,
        course_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        per_page: int = 10
    ) -> Dict[str, Any]:
        """One student's records and status counts over an optional date range.

        Students see only their own history; lecturers see the part of it
        recorded in their courses.
        """
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date")
        if actor.is_student() and actor.id != student_id:
            raise Forbidden("You can only view your own attendance")

        with self.store('loading student attendance'):
            student = self.session.get(User, student_id)
            if student is None or student.role != UserRole.STUDENT:
                raise StudentNotFound()

            query = self.session.query(AttendanceRecord).filter(AttendanceRecord.student_id == student.id)
            if course_id is not None:
                query = query.filter(AttendanceRecord.course_id == course_id)
            if start_date:
                query = query.filter(AttendanceRecord.date >= start_date)
            if end_date:
                query = query.filter(AttendanceRecord.date <= end_date)
            query = self._visible_to(query, actor)

            rows = query.with_entities(
                AttendanceRecord.status, func.count(AttendanceRecord.id)
            ).group_by(AttendanceRecord.status).all()
            records, pagination = self.paginate(self._newest_first(query), page, per_page)

            return {
                'student': student.to_dict(exclude=['email', 'is_active', 'created_at', 'updated_at']),
                'start_date': start_date.isoformat() if start_date else None,
                'end_date': end_date.isoformat() if end_date else None,
                'summary': self._summarise(rows),
                'attendance': [record.to_dict() for record in records],
                'pagination': pagination
            }

    def course_summary(
        self,
        actor: Actor,
        course_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> Dict[str, Any]:
        """Counts per status and attendance rate over an optional date range."""
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date must not be after end_date")

        with self.store('summarising attendance'):
            course = self.session.get(Course, course_id)
            if course is None:
                raise CourseNotFound()

            if not (actor.is_admin() or course.lecturer_id == actor.id):
                raise Forbidden("You can only view attendance for your own courses")

            query = self.session.query(
                AttendanceRecord.status, func.count(AttendanceRecord.id)
            ).filter(AttendanceRecord.course_id == course.id)

            if start_date:
                query = query.filter(AttendanceRecord.date >= start_date)
            if end_date:
                query = query.filter(AttendanceRecord.date <= end_date)

            rows = query.group_by(AttendanceRecord.status).all()

        return {
            'course': course.describe(),
            'start_date': start_date.isoformat() if start_date else None,
            'end_date': end_date.isoformat() if end_date else None,
            'summary': self._summarise(rows)
        }

    # =================== INTERNALS ===================

    def _find(self, student_id: int, course_id: int, on_date: date) -> Optional[AttendanceRecord]:
        return self.session.query(AttendanceRecord).filter_by(
            student_id=student_id,
            course_id=course_id,
            date=on_date
        ).first()

    @staticmethod
    def _visible_to(query: Query, actor: Actor) -> Query:
        if actor.is_student():
            return query.filter(AttendanceRecord.student_id == actor.id)
        if actor.is_lecturer():
            return query.join(Course, AttendanceRecord.course_id == Course.id).filter(
                Course.lecturer_id == actor.id
            )
        return query

    @staticmethod
    def _newest_first(query: Query) -> Query:
        return query.order_by(
            AttendanceRecord.date.desc(),
            AttendanceRecord.created_at.desc(),
            AttendanceRecord.id.desc()
        )

    @staticmethod
    def _summarise(rows: List[Tuple[AttendanceStatus, int]]) -> Dict[str, Any]:
        """Counts per status, total and the present rate in percent."""
        result = {status.value: 0 for status in AttendanceStatus}
        for status, count in rows:
            result[status.value] = count
        result['total'] = sum(result[status.value] for status in AttendanceStatus)
        result['attendance_rate'] = (
            round(result['present'] / result['total'] * 100, 2) if result['total'] > 0 else 0
        )
        return result
