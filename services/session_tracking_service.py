"""
SessionTrackingService - opens visitor sessions and counts their page views
"""

import logging
from typing import Any, Callable, Dict

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from repositories.visitor_session_repository import VisitorSessionRepository
from services.common.errors import StorageError, ValidationError
from services.traffic_signals import derive_browser, derive_device_type, derive_traffic_source
from utils.datetime_utils import utc_now, ensure_utc

logger = logging.getLogger(__name__)


class SessionTrackingService:
    """Create-on-first-sight sessions; later page views are atomic increments"""

    def __init__(self, visitor_session_repository: VisitorSessionRepository,
                 clock: Callable = utc_now):
        self.visitor_session_repository = visitor_session_repository
        self.clock = clock

    def record_page_view(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Register a page view for a session.

        Raises:
            ValidationError: session_id or clinic_slug missing
            StorageError: The session could not be written
        """
        if not isinstance(data, dict):
            raise ValidationError("Session payload must be an object")
        session_id = data.get('session_id')
        clinic_slug = data.get('clinic_slug')
        if not isinstance(session_id, str) or not session_id:
            raise ValidationError("session_id is required")
        if not isinstance(clinic_slug, str) or not clinic_slug:
            raise ValidationError("clinic_slug is required")

        now = self.clock()
        try:
            session = self.visitor_session_repository.get_by_session_id(session_id)
            if session is None:
                session = self._open_session(data, now)
                if session is not None:
                    return session.to_dict()
                # Another request opened it first
                session = self.visitor_session_repository.get_by_session_id(session_id)

            duration = max(int((now - ensure_utc(session.started_at)).total_seconds()), 0)
            self.visitor_session_repository.record_page_view(session_id, now, duration)
            self.visitor_session_repository.commit()
            self.visitor_session_repository.refresh(session)
            return session.to_dict()
        except SQLAlchemyError as e:
            self.visitor_session_repository.rollback()
            raise StorageError(f"Could not record page view for session {session_id}") from e

    def _open_session(self, data: Dict[str, Any], now):
        referrer = data.get('referrer') or None
        try:
            session = self.visitor_session_repository.create(
                session_id=data['session_id'],
                clinic_slug=data['clinic_slug'],
                visitor_id=data.get('visitor_id'),
                device_type=derive_device_type(data.get('viewport_width')),
                browser=derive_browser(data.get('user_agent')),
                source=derive_traffic_source(referrer),
                referrer=referrer,
                campaign=data.get('campaign'),
                page_views=1,
                started_at=now,
                last_seen_at=now,
                duration_seconds=0,
            )
            self.visitor_session_repository.commit()
            logger.debug(f"Opened session {session.session_id} for clinic {session.clinic_slug}")
            return session
        except IntegrityError:
            self.visitor_session_repository.rollback()
            return None
