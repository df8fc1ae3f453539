"""
ConversionEventRepository - append-only conversion events and window queries
"""

from datetime import datetime
from typing import List
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
import logging

from repositories.base_repository import BaseRepository
from clinic_database import ConversionEvent

logger = logging.getLogger(__name__)


class ConversionEventRepository(BaseRepository[ConversionEvent]):
    """Repository for ConversionEvent rows. Events are never updated."""

    def __init__(self, session):
        super().__init__(session, ConversionEvent)

    def find_in_window(self, clinic_slug: str, start: datetime, end: datetime) -> List[ConversionEvent]:
        """Events with start <= occurred_at <= end, oldest first"""
        try:
            return (
                self.session.query(ConversionEvent)
                .filter(ConversionEvent.clinic_slug == clinic_slug)
                .filter(ConversionEvent.occurred_at >= start)
                .filter(ConversionEvent.occurred_at <= end)
                .order_by(ConversionEvent.occurred_at, ConversionEvent.id)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error loading conversion events for clinic {clinic_slug}: {e}")
            raise

    def sum_value_in_window(self, clinic_slug: str, start: datetime, end: datetime) -> int:
        try:
            total = (
                self.session.query(func.coalesce(func.sum(ConversionEvent.value), 0))
                .filter(ConversionEvent.clinic_slug == clinic_slug)
                .filter(ConversionEvent.occurred_at >= start)
                .filter(ConversionEvent.occurred_at <= end)
                .scalar()
            )
            return int(total or 0)
        except SQLAlchemyError as e:
            logger.error(f"Error summing conversion value for clinic {clinic_slug}: {e}")
            raise

    def find_all_for_clinic(self, clinic_slug: str) -> List[ConversionEvent]:
        return self.find_by(order_by='occurred_at', clinic_slug=clinic_slug)
