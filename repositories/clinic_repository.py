"""
ClinicRepository - clinic profiles, conversion counters and the CRM contact log
"""

from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy import case, func, or_
from sqlalchemy.exc import SQLAlchemyError
import logging

from repositories.base_repository import BaseRepository
from clinic_database import Clinic, ClinicContact
from services.growth_tables import COUNTER_COLUMNS

logger = logging.getLogger(__name__)


class ClinicRepository(BaseRepository[Clinic]):
    """Repository for Clinic rows"""

    def __init__(self, session):
        super().__init__(session, Clinic)

    def get_by_slug(self, slug: str) -> Optional[Clinic]:
        return self.find_one_by(slug=slug)

    def list_slugs(self) -> List[str]:
        try:
            rows = self.session.query(Clinic.slug).order_by(Clinic.slug).all()
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Error listing clinic slugs: {e}")
            raise

    def increment_conversion_counters(self, slug: str, conversion_type: str,
                                      occurred_at: datetime) -> int:
        """
        Bump the total and per-type counters and advance the last conversion
        time. A tracker that commits late never moves last_conversion_at
        backwards. Returns the number of clinic rows touched.
        """
        column = getattr(Clinic, COUNTER_COLUMNS[conversion_type])
        latest = case(
            (or_(Clinic.last_conversion_at.is_(None), Clinic.last_conversion_at < occurred_at), occurred_at),
            else_=Clinic.last_conversion_at,
        )
        return self._update_where(
            [Clinic.slug == slug],
            {
                Clinic.conversions_total: Clinic.conversions_total + 1,
                column: column + 1,
                Clinic.last_conversion_at: latest,
            },
            f"incrementing counters for clinic {slug}",
        )

    def overwrite_conversion_counters(self, slug: str, counts: Dict[str, int],
                                      last_conversion_at: Optional[datetime]) -> int:
        """Replace all counters with recomputed values"""
        values = {Clinic.conversions_total: sum(counts.values()),
                  Clinic.last_conversion_at: last_conversion_at}
        for conversion_type, column_name in COUNTER_COLUMNS.items():
            values[getattr(Clinic, column_name)] = counts.get(conversion_type, 0)
        return self._update_where([Clinic.slug == slug], values,
                                  f"overwriting counters for clinic {slug}")


class ClinicContactRepository(BaseRepository[ClinicContact]):
    """Repository for the CRM contact log"""

    def __init__(self, session):
        super().__init__(session, ClinicContact)

    def get_last_contact_at(self, clinic_slug: str) -> Optional[datetime]:
        try:
            return (
                self.session.query(func.max(ClinicContact.contacted_at))
                .filter(ClinicContact.clinic_slug == clinic_slug)
                .scalar()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error reading last contact for clinic {clinic_slug}: {e}")
            raise
