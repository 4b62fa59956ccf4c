"""Attendance session lifecycle.

A session starts Active and ends either Expired (time ran out or the
lecturer closed it) or Cancelled (the lecturer called it off early). Both are
terminal. Expiry is re-derived from the clock on every read and scan, so a
stored Active flag past its expiry is never trusted. Terminal transitions are
compare-and-set updates on ``state = active``: whichever terminal state is
persisted first stays.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from edutend.models.attendance import AttendanceStatus
from edutend.models.attendance_session import AttendanceSession, SessionState
from edutend.models.course import Course, enrollments
from edutend.services.actor import Actor
from edutend.services.attendance_service import AttendanceService
from edutend.services.base import BaseService
from edutend.services.broadcast_service import (
    Broadcaster, SESSION_CANCELLED, SESSION_CREATED, SESSION_EXPIRED, SESSION_SCANNED
)
from edutend.services.qr_service import QRService, SessionPayload
from edutend.utils.errors import (
    CourseNotFound, Forbidden, MalformedPayload, NotEnrolled, SessionExpired,
    SessionNotActive, SessionNotFound, ValidationError
)
from edutend.utils.helpers import utcnow, isoformat

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 100


class SessionManager(BaseService):
    """Owns create, scan, expire and cancel for attendance sessions."""

    def __init__(
        self,
        session: Session,
        broadcaster: Broadcaster,
        qr_service: QRService,
        attendance: AttendanceService,
        clock: Callable[[], datetime] = utcnow,
        min_duration: int = 1,
        max_duration: int = 480
    ):
        super().__init__(session, broadcaster, clock)
        self.qr_service = qr_service
        self.attendance = attendance
        self.min_duration = min_duration
        self.max_duration = max_duration

    # =================== CREATE ===================

    def create(
        self,
        actor: Actor,
        course_id: int,
        duration_minutes: int,
        title: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Tuple[AttendanceSession, str]:
        """Open a session for a course. Returns the session and its QR data URI."""
        if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int) or \
                not self.min_duration <= duration_minutes <= self.max_duration:
            raise ValidationError(
                f"Duration must be between {self.min_duration} and {self.max_duration} minutes"
            )

        with self.store('creating session'):
            course = self.session.get(Course, course_id)
            if course is None:
                raise CourseNotFound()

            if not (actor.is_admin() or course.lecturer_id == actor.id):
                raise Forbidden("You can only generate QR codes for your own courses")

            now = self.clock()
            expires_at = now + timedelta(minutes=duration_minutes)
            session_id = AttendanceSession.generate_session_id()
            payload = SessionPayload(
                session_id=session_id,
                course_id=course.id,
                expires_at=expires_at
            ).encode()

            qr_session = AttendanceSession(
                session_id=session_id,
                course_id=course.id,
                created_by=actor.id,
                title=(title or f"Attendance Session - {course.name}")[:TITLE_MAX_LENGTH],
                notes=notes or '',
                state=SessionState.ACTIVE,
                expires_at=expires_at,
                scan_count=0,
                payload=payload,
                created_at=now,
                updated_at=now
            )
            self.session.add(qr_session)
            self.session.commit()

        qr_image = self.qr_service.render(qr_session.payload)

        logger.info(
            f"Session {qr_session.session_id} opened for course {qr_session.course_id} "
            f"by user {actor.id}, expires {isoformat(qr_session.expires_at)}"
        )
        self.emit(SESSION_CREATED, {
            'sessionId': qr_session.session_id,
            'courseId': qr_session.course_id,
            'createdBy': qr_session.created_by,
            'expiresAt': isoformat(qr_session.expires_at)
        })
        return qr_session, qr_image

    # =================== SCAN ===================

    def validate_and_scan(self, raw_payload: Any, scanner: Actor) -> Dict[str, Any]:
        """Check a scanned payload and mark the scanner present for today."""
        payload = SessionPayload.decode(raw_payload)

        with self.store('recording scan'):
            qr_session = self._find(payload.session_id)

            if payload.course_id != qr_session.course_id:
                raise MalformedPayload("QR code does not match its session")

            now = self.clock()
            if qr_session.is_expired(now):
                if qr_session.state == SessionState.ACTIVE:
                    self._close(qr_session, SessionState.EXPIRED, now)
                logger.warning(
                    f"Rejected scan by user {scanner.id}: session {qr_session.session_id} expired"
                )
                raise SessionExpired(context=self._failure_context(qr_session))

            if qr_session.state != SessionState.ACTIVE:
                logger.warning(
                    f"Rejected scan by user {scanner.id}: session {qr_session.session_id} "
                    f"is {qr_session.state.value}"
                )
                raise SessionNotActive(context=self._failure_context(qr_session))

            if not self._is_enrolled(qr_session.course_id, scanner.id):
                raise NotEnrolled()

            # Record and counter commit together
            self.session.query(AttendanceSession).filter(
                AttendanceSession.id == qr_session.id
            ).update({
                AttendanceSession.scan_count: AttendanceSession.scan_count + 1,
                AttendanceSession.last_scanned_at: now,
                AttendanceSession.updated_at: now
            }, synchronize_session=False)

            record, _ = self.attendance.upsert(
                student_id=scanner.id,
                course_id=qr_session.course_id,
                on_date=now.date(),
                status=AttendanceStatus.PRESENT,
                notes=None,
                marked_by=scanner.id,
                session_pk=qr_session.id,
                commit=False
            )
            self.session.commit()

            course = qr_session.course
            result = {
                'session_id': qr_session.session_id,
                'course_id': course.id,
                'course_code': course.code,
                'course_name': course.name,
                'title': qr_session.title,
                'notes': qr_session.notes,
                'expires_at': isoformat(qr_session.expires_at),
                'created_by': qr_session.creator.name,
                'scan_count': qr_session.scan_count,
                'attendance': {
                    'id': record.id,
                    'date': record.date.isoformat(),
                    'status': record.status.value
                }
            }

        logger.info(f"Scan accepted: user {scanner.id} in session {result['session_id']}")
        self.emit(SESSION_SCANNED, {
            'sessionId': result['session_id'],
            'courseId': result['course_id'],
            'studentId': scanner.id
        })
        self.attendance.emit_marked(record)
        return result

    # =================== TERMINAL TRANSITIONS ===================

    def expire(self, session_id: str, actor: Actor) -> AttendanceSession:
        """Close a session now. Already-closed sessions are left untouched."""
        with self.store('expiring session'):
            qr_session = self._find(session_id)
            self._authorize_owner(qr_session, actor, "You can only expire your own QR sessions")

            if qr_session.state == SessionState.ACTIVE:
                self._close(qr_session, SessionState.EXPIRED, self.clock(), close_expiry=True)

        return qr_session

    def cancel(self, session_id: str, actor: Actor) -> AttendanceSession:
        """Call a session off early. A session already past its expiry ends Expired instead."""
        with self.store('cancelling session'):
            qr_session = self._find(session_id)
            self._authorize_owner(qr_session, actor, "You can only cancel your own QR sessions")

            if qr_session.state == SessionState.ACTIVE:
                now = self.clock()
                target = SessionState.EXPIRED if qr_session.is_expired(now) else SessionState.CANCELLED
                self._close(qr_session, target, now)

        return qr_session

    def expire_overdue(self) -> int:
        """Persist Expired for every Active session past its expiry."""
        with self.store('sweeping expired sessions'):
            now = self.clock()
            overdue = self.session.query(AttendanceSession).filter(
                AttendanceSession.state == SessionState.ACTIVE,
                AttendanceSession.expires_at < now
            ).all()

            expired = 0
            for qr_session in overdue:
                if self._close(qr_session, SessionState.EXPIRED, now):
                    expired += 1

        if expired:
            logger.info(f"Expiry sweep closed {expired} sessions")
        return expired

    # =================== READS ===================

    def get(self, session_id: str) -> AttendanceSession:
        with self.store('loading session'):
            return self._find(session_id)

    def list_active(
        self,
        course_id: Optional[int] = None,
        creator_id: Optional[int] = None
    ) -> List[AttendanceSession]:
        """Sessions that are Active and whose expiry is still ahead."""
        with self.store('listing active sessions'):
            query = self.session.query(AttendanceSession).filter(
                self._effective_state_clause(SessionState.ACTIVE, self.clock())
            )
            if course_id is not None:
                query = query.filter(AttendanceSession.course_id == course_id)
            if creator_id is not None:
                query = query.filter(AttendanceSession.created_by == creator_id)
            return query.order_by(AttendanceSession.created_at.desc(), AttendanceSession.id.desc()).all()

    def list_sessions(
        self,
        course_id: Optional[int] = None,
        state: Optional[SessionState] = None,
        creator_id: Optional[int] = None,
        page: int = 1,
        per_page: int = 10
    ) -> Dict[str, Any]:
        """Newest-first page of sessions, filtered on effective state."""
        with self.store('listing sessions'):
            now = self.clock()
            query = self.session.query(AttendanceSession)
            if course_id is not None:
                query = query.filter(AttendanceSession.course_id == course_id)
            if creator_id is not None:
                query = query.filter(AttendanceSession.created_by == creator_id)
            if state is not None:
                query = query.filter(self._effective_state_clause(state, now))

            items, pagination = self.paginate(
                query.order_by(AttendanceSession.created_at.desc(), AttendanceSession.id.desc()),
                page,
                per_page
            )

        return {
            'sessions': [item.to_dict(now) for item in items],
            'pagination': pagination
        }

    def stats(self, course_id: Optional[int] = None, creator_id: Optional[int] = None) -> Dict[str, int]:
        """Counts per effective state plus the total number of scans."""
        with self.store('computing session stats'):
            now = self.clock()
            query = self.session.query(
                AttendanceSession.state,
                func.count(AttendanceSession.id),
                func.coalesce(func.sum(AttendanceSession.scan_count), 0)
            )
            overdue = self.session.query(func.count(AttendanceSession.id)).filter(
                AttendanceSession.state == SessionState.ACTIVE,
                AttendanceSession.expires_at < now
            )
            if course_id is not None:
                query = query.filter(AttendanceSession.course_id == course_id)
                overdue = overdue.filter(AttendanceSession.course_id == course_id)
            if creator_id is not None:
                query = query.filter(AttendanceSession.created_by == creator_id)
                overdue = overdue.filter(AttendanceSession.created_by == creator_id)

            rows = query.group_by(AttendanceSession.state).all()
            overdue_count = overdue.scalar() or 0

        result = {state.value: 0 for state in SessionState}
        result['total'] = 0
        result['total_scans'] = 0
        for state, count, scans in rows:
            result[state.value] = count
            result['total'] += count
            result['total_scans'] += int(scans)

        result[SessionState.ACTIVE.value] -= overdue_count
        result[SessionState.EXPIRED.value] += overdue_count
        return result

    # =================== INTERNALS ===================

    def _find(self, session_id: str) -> AttendanceSession:
        qr_session = self.session.query(AttendanceSession).filter_by(session_id=session_id).first()
        if qr_session is None:
            raise SessionNotFound()
        return qr_session

    def _is_enrolled(self, course_id: int, student_id: int) -> bool:
        row = self.session.execute(
            enrollments.select().where(
                enrollments.c.course_id == course_id,
                enrollments.c.student_id == student_id
            )
        ).first()
        return row is not None

    @staticmethod
    def _authorize_owner(qr_session: AttendanceSession, actor: Actor, message: str) -> None:
        if not (actor.is_admin() or qr_session.created_by == actor.id):
            raise Forbidden(message)

    def _close(
        self,
        qr_session: AttendanceSession,
        target: SessionState,
        now: datetime,
        close_expiry: bool = False
    ) -> bool:
        """Move an Active session to a terminal state.

        Returns False when another caller already closed it; the stored
        terminal state is then left as it is.
        """
        values = {
            AttendanceSession.state: target,
            AttendanceSession.updated_at: now
        }
        if close_expiry and now < qr_session.expires_at:
            values[AttendanceSession.expires_at] = now

        changed = self.session.query(AttendanceSession).filter(
            AttendanceSession.id == qr_session.id,
            AttendanceSession.state == SessionState.ACTIVE
        ).update(values, synchronize_session=False)
        self.session.commit()
        # Commit expires loaded attributes; the next read sees the stored row

        if not changed:
            return False

        event = SESSION_CANCELLED if target == SessionState.CANCELLED else SESSION_EXPIRED
        logger.info(f"Session {qr_session.session_id} is now {target.value}")
        self.emit(event, {
            'sessionId': qr_session.session_id,
            'courseId': qr_session.course_id
        })
        return True

    @staticmethod
    def _effective_state_clause(state: SessionState, now: datetime):
        if state == SessionState.ACTIVE:
            return and_(
                AttendanceSession.state == SessionState.ACTIVE,
                AttendanceSession.expires_at >= now
            )
        if state == SessionState.EXPIRED:
            return or_(
                AttendanceSession.state == SessionState.EXPIRED,
                and_(
                    AttendanceSession.state == SessionState.ACTIVE,
                    AttendanceSession.expires_at < now
                )
            )
        return AttendanceSession.state == state

    @staticmethod
    def _failure_context(qr_session: AttendanceSession) -> Dict[str, Any]:
        course = qr_session.course
        return {
            'session_id': qr_session.session_id,
            'course_id': course.id,
            'course_code': course.code,
            'course_name': course.name,
            'expires_at': isoformat(qr_session.expires_at),
            'state': qr_session.state.value
        }
