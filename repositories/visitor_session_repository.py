"""
VisitorSessionRepository - per-visit session rows
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
import logging

from repositories.base_repository import BaseRepository
from clinic_database import VisitorSession

logger = logging.getLogger(__name__)


class VisitorSessionRepository(BaseRepository[VisitorSession]):
    """Repository for VisitorSession rows"""

    def __init__(self, session):
        super().__init__(session, VisitorSession)

    def get_by_session_id(self, session_id: str) -> Optional[VisitorSession]:
        return self.find_one_by(session_id=session_id)

    def record_page_view(self, session_id: str, seen_at: datetime, duration_seconds: int) -> int:
        """Count a page view and extend the session in one statement"""
        return self._update_where(
            [VisitorSession.session_id == session_id],
            {
                VisitorSession.page_views: VisitorSession.page_views + 1,
                VisitorSession.last_seen_at: seen_at,
                VisitorSession.duration_seconds: duration_seconds,
            },
            f"recording page view for session {session_id}",
        )

    def mark_converted(self, session_id: str, value: int) -> int:
        """Flag the session converted and add the conversion value"""
        return self._update_where(
            [VisitorSession.session_id == session_id],
            {
                VisitorSession.is_converted: True,
                VisitorSession.conversion_value: VisitorSession.conversion_value + value,
                VisitorSession.conversion_count: VisitorSession.conversion_count + 1,
            },
            f"marking session {session_id} converted",
        )

    def find_started_between(self, clinic_slug: str, start: datetime, end: datetime) -> List[VisitorSession]:
        try:
            return (
                self.session.query(VisitorSession)
                .filter(VisitorSession.clinic_slug == clinic_slug)
                .filter(VisitorSession.started_at >= start)
                .filter(VisitorSession.started_at <= end)
                .order_by(VisitorSession.started_at)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error loading sessions for clinic {clinic_slug}: {e}")
            raise

    def sum_page_views(self, clinic_slug: str, start: datetime, end: datetime) -> int:
        try:
            total = (
                self.session.query(func.coalesce(func.sum(VisitorSession.page_views), 0))
                .filter(VisitorSession.clinic_slug == clinic_slug)
                .filter(VisitorSession.started_at >= start)
                .filter(VisitorSession.started_at <= end)
                .scalar()
            )
            return int(total or 0)
        except SQLAlchemyError as e:
            logger.error(f"Error summing page views for clinic {clinic_slug}: {e}")
            raise
