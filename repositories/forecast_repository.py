"""
Forecast repositories - upgrade forecasts and their audit log
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
import logging

from repositories.base_repository import BaseRepository
from clinic_database import UpgradeForecast, ForecastLog

logger = logging.getLogger(__name__)


class UpgradeForecastRepository(BaseRepository[UpgradeForecast]):
    """Repository for UpgradeForecast rows. Forecasts are never mutated."""

    def __init__(self, session):
        super().__init__(session, UpgradeForecast)

    def get_latest_for_clinic(self, clinic_slug: str) -> Optional[UpgradeForecast]:
        try:
            return (
                self.session.query(UpgradeForecast)
                .filter(UpgradeForecast.clinic_slug == clinic_slug)
                .order_by(UpgradeForecast.created_at.desc(), UpgradeForecast.id.desc())
                .first()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error loading latest forecast for clinic {clinic_slug}: {e}")
            raise

    def get_latest_unexpired(self, clinic_slug: str, now: datetime) -> Optional[UpgradeForecast]:
        try:
            return (
                self.session.query(UpgradeForecast)
                .filter(UpgradeForecast.clinic_slug == clinic_slug)
                .filter(UpgradeForecast.expires_at > now)
                .order_by(UpgradeForecast.created_at.desc(), UpgradeForecast.id.desc())
                .first()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error loading current forecast for clinic {clinic_slug}: {e}")
            raise


class ForecastLogRepository(BaseRepository[ForecastLog]):
    """Append-only forecast audit log"""

    def __init__(self, session):
        super().__init__(session, ForecastLog)

    def find_for_clinic(self, clinic_slug: str) -> List[ForecastLog]:
        return self.find_by(order_by='created_at', clinic_slug=clinic_slug)
