"""Shared plumbing for services that own a unit of work."""
import logging
import math
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, List, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from edutend.services.broadcast_service import Broadcaster
from edutend.utils.errors import StoreUnavailable
from edutend.utils.helpers import utcnow

logger = logging.getLogger(__name__)


class BaseService:
    """Holds the injected store session, broadcaster and clock."""

    def __init__(
        self,
        session: Session,
        broadcaster: Broadcaster,
        clock: Callable[[], datetime] = utcnow
    ):
        self.session = session
        self.broadcaster = broadcaster
        self.clock = clock

    @contextmanager
    def store(self, action: str):
        """Roll back and wrap persistence failures as StoreUnavailable."""
        try:
            yield self.session
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Store failure while {action}: {str(e)}")
            raise StoreUnavailable() from e

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        """Publish after commit; delivery problems never fail the caller."""
        try:
            self.broadcaster.publish(event, payload)
        except Exception as e:
            logger.warning(f"Broadcast of {event} failed: {str(e)}")

    @staticmethod
    def paginate(query: Query, page: int, per_page: int) -> Tuple[List[Any], Dict[str, Any]]:
        """Slice an ordered query and describe the page."""
        total = query.count()
        items = query.offset((page - 1) * per_page).limit(per_page).all()

        total_pages = math.ceil(total / per_page) if per_page else 0
        return items, {
            'current_page': page,
            'per_page': per_page,
            'total_pages': total_pages,
            'total': total,
            'has_next': page < total_pages,
            'has_prev': page > 1
        }
