"""
VariantTestRepository - A/B tests, their variants and variant result counters
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
import logging

from repositories.base_repository import BaseRepository
from clinic_database import VariantTest, TestVariant
from services.enums import VariantTestStatus

logger = logging.getLogger(__name__)


class VariantTestRepository(BaseRepository[VariantTest]):
    """Repository for VariantTest and its TestVariant children"""

    def __init__(self, session):
        super().__init__(session, VariantTest)

    def create_with_variants(self, test_data: Dict[str, Any],
                             variants_data: List[Dict[str, Any]]) -> VariantTest:
        """Create a test together with its ordered variants"""
        try:
            test = VariantTest(**test_data)
            for position, variant in enumerate(variants_data):
                test.variants.append(TestVariant(position=position, **variant))
            self.session.add(test)
            self.session.flush()
            logger.debug(f"Created VariantTest {test.id} with {len(variants_data)} variants")
            return test
        except SQLAlchemyError as e:
            logger.error(f"Error creating variant test: {e}")
            self.session.rollback()
            raise

    def find_by_clinic(self, clinic_slug: str) -> List[VariantTest]:
        try:
            return (
                self.session.query(VariantTest)
                .filter(VariantTest.clinic_slug == clinic_slug)
                .order_by(VariantTest.created_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error listing variant tests for clinic {clinic_slug}: {e}")
            raise

    def find_running(self, clinic_slug: str, test_type: Optional[str] = None) -> List[VariantTest]:
        """Running tests for a clinic, oldest first"""
        try:
            query = (
                self.session.query(VariantTest)
                .filter(VariantTest.clinic_slug == clinic_slug)
                .filter(VariantTest.status == VariantTestStatus.RUNNING.value)
            )
            if test_type:
                query = query.filter(VariantTest.test_type == test_type)
            return query.order_by(VariantTest.created_at, VariantTest.id).all()
        except SQLAlchemyError as e:
            logger.error(f"Error loading running tests for clinic {clinic_slug}: {e}")
            raise

    def get_variant(self, test_id: str, variant_key: str) -> Optional[TestVariant]:
        try:
            return (
                self.session.query(TestVariant)
                .filter(TestVariant.test_id == test_id, TestVariant.variant_key == variant_key)
                .first()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error loading variant {variant_key} of test {test_id}: {e}")
            raise

    def increment_variant_views(self, test_id: str, variant_key: str) -> int:
        return self._increment(TestVariant.views, [test_id], variant_key)

    def increment_variant_conversions(self, test_ids: List[str], variant_key: str) -> int:
        """Credit one conversion to the named variant of each given test"""
        if not test_ids:
            return 0
        return self._increment(TestVariant.conversions, test_ids, variant_key)

    def save_variant_results(self, variant: TestVariant, conversion_rate: float,
                             confidence: float, is_winner: bool) -> TestVariant:
        return self.update(variant, conversion_rate=conversion_rate,
                           confidence=confidence, is_winner=is_winner)

    def _increment(self, column, test_ids: List[str], variant_key: str) -> int:
        return self._update_where(
            [TestVariant.test_id.in_(test_ids), TestVariant.variant_key == variant_key],
            {column: column + 1},
            f"incrementing {column.key} for variant {variant_key}",
            model=TestVariant,
        )
