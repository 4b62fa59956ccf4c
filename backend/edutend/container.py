"""Wires services to an explicit store session, broadcaster and clock."""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from edutend.services.attendance_service import AttendanceService
from edutend.services.broadcast_service import Broadcaster
from edutend.services.qr_service import QRService
from edutend.services.session_service import SessionManager
from edutend.utils.helpers import utcnow


@dataclass(frozen=True)
class Container:
    attendance_service: AttendanceService
    session_manager: SessionManager


def build_container(
    *,
    session: Session,
    broadcaster: Broadcaster,
    config: Dict[str, Any],
    clock: Optional[Callable[[], datetime]] = None
) -> Container:
    clock = clock or utcnow

    attendance_service = AttendanceService(session, broadcaster, clock)
    session_manager = SessionManager(
        session,
        broadcaster,
        QRService.from_config(config),
        attendance_service,
        clock=clock,
        min_duration=config.get('SESSION_MIN_DURATION_MINUTES', 1),
        max_duration=config.get('SESSION_MAX_DURATION_MINUTES', 480)
    )

    return Container(
        attendance_service=attendance_service,
        session_manager=session_manager
    )


def get_container() -> Container:
    """Build the services for the current request from the app's extensions."""
    from flask import current_app
    from edutend import db

    return build_container(
        session=db.session,
        broadcaster=current_app.extensions['edutend.broadcaster'],
        config=current_app.config,
        clock=current_app.extensions.get('edutend.clock')
    )
