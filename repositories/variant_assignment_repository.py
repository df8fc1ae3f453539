"""
VariantAssignmentRepository - database-backed AssignmentStore
"""

from typing import Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import logging

from repositories.base_repository import BaseRepository
from clinic_database import VariantAssignment
from services.assignment_store import AssignmentStore
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class VariantAssignmentRepository(BaseRepository[VariantAssignment], AssignmentStore):
    """Stores one row per (test, visitor); saves are last-write-wins"""

    def __init__(self, session):
        super().__init__(session, VariantAssignment)

    def get_assignment(self, test_id: str, visitor_id: str) -> Optional[str]:
        row = self.find_one_by(test_id=test_id, visitor_id=visitor_id)
        return row.variant_key if row else None

    def save_assignment(self, test_id: str, visitor_id: str, variant_key: str) -> None:
        """
        Insert or overwrite the assignment. A concurrent insert of the same
        pair surfaces as an IntegrityError inside the savepoint, after which
        the row is overwritten instead.
        """
        existing = self.find_one_by(test_id=test_id, visitor_id=visitor_id)
        if existing is not None:
            self.update(existing, variant_key=variant_key, assigned_at=utc_now())
            return

        try:
            with self.session.begin_nested():
                self.session.add(VariantAssignment(
                    test_id=test_id,
                    visitor_id=visitor_id,
                    variant_key=variant_key,
                    assigned_at=utc_now(),
                ))
        except IntegrityError:
            logger.info(f"Assignment for visitor {visitor_id} in test {test_id} raced; overwriting")
            existing = self.find_one_by(test_id=test_id, visitor_id=visitor_id)
            if existing is not None:
                self.update(existing, variant_key=variant_key, assigned_at=utc_now())
        except SQLAlchemyError as e:
            logger.error(f"Error saving assignment for visitor {visitor_id} in test {test_id}: {e}")
            raise

    def count_for_test(self, test_id: str) -> int:
        return self.count(test_id=test_id)
