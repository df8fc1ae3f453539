"""
VariantAssignmentService - which variant of each running test a visitor sees
"""

import logging
import random
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from repositories.variant_test_repository import VariantTestRepository
from services.assignment_store import AssignmentStore
from services.common.errors import NotFoundError, StorageError, ValidationError
from services.variant_split import control_variant_key, decide_inclusion, draw_variant

logger = logging.getLogger(__name__)


class VariantAssignmentService:
    """
    Get-or-create assignment of visitors to test variants.

    Two first visits by the same visitor racing each other may both draw and
    the later save wins.
    """

    def __init__(self, variant_test_repository: VariantTestRepository,
                 assignment_store: AssignmentStore,
                 random_source: Callable[[], float] = random.random):
        self.variant_test_repository = variant_test_repository
        self.assignment_store = assignment_store
        self.random_source = random_source

    def assign(self, visitor_id: str, test) -> str:
        """
        Return the visitor's variant key for a test, assigning one if needed.

        Raises:
            ValidationError: Missing visitor id or a test without variants
            StorageError: The assignment could not be read or saved
        """
        if not visitor_id:
            raise ValidationError("visitor_id is required")
        if not test.variants:
            raise ValidationError(f"Variant test {test.id} has no variants")

        saved = []
        try:
            variant_key = self._assign(visitor_id, test, saved)
            self.variant_test_repository.commit()
            return variant_key
        except SQLAlchemyError as e:
            self._roll_back(saved)
            raise StorageError(f"Could not assign visitor to test {test.id}") from e

    def get_variants_for_visitor(self, visitor_id: str, clinic_slug: str,
                                 test_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """One assignment per running test of the clinic, oldest test first"""
        if not visitor_id:
            raise ValidationError("visitor_id is required")
        if not clinic_slug:
            raise ValidationError("clinic_slug is required")

        saved = []
        try:
            tests = self.variant_test_repository.find_running(clinic_slug, test_type)
            assignments = []
            for test in tests:
                if not test.variants:
                    logger.warning(f"Running test {test.id} has no variants; skipping")
                    continue
                variant_key = self._assign(visitor_id, test, saved)
                variant = next(v for v in test.variants if v.variant_key == variant_key)
                assignments.append({
                    'test_id': test.id,
                    'variant_id': variant_key,
                    'test_type': test.test_type,
                    'content': variant.content,
                })
            self.variant_test_repository.commit()
            return assignments
        except SQLAlchemyError as e:
            self._roll_back(saved)
            raise StorageError(f"Could not load variants for clinic {clinic_slug}") from e

    def get_variant_content(self, visitor_id: str, clinic_slug: str, test_type: str,
                            default_content: Any = None) -> Any:
        """Content of the visitor's variant in the first running test of a type"""
        assignments = self.get_variants_for_visitor(visitor_id, clinic_slug, test_type)
        if not assignments:
            return default_content
        return assignments[0]['content']

    def record_variant_view(self, test_id: str, variant_key: str) -> None:
        """Count one impression of a variant"""
        try:
            updated = self.variant_test_repository.increment_variant_views(test_id, variant_key)
            if not updated:
                self.variant_test_repository.rollback()
                raise NotFoundError(f"Variant {variant_key} not found in test {test_id}")
            self.variant_test_repository.commit()
        except SQLAlchemyError as e:
            self.variant_test_repository.rollback()
            raise StorageError(f"Could not record view for test {test_id}") from e

    def _assign(self, visitor_id: str, test, saved: list) -> str:
        variants = list(test.variants)
        known_keys = {v.variant_key for v in variants}

        existing = self.assignment_store.get_assignment(test.id, visitor_id)
        if existing in known_keys:
            return existing
        if existing is not None:
            logger.warning(
                f"Stored variant {existing} no longer exists in test {test.id}; reassigning visitor {visitor_id}"
            )

        if decide_inclusion(visitor_id, test.id, test.traffic_allocation):
            variant_key = draw_variant(variants, self.random_source)
        else:
            variant_key = control_variant_key(variants)

        self.assignment_store.save_assignment(test.id, visitor_id, variant_key)
        saved.append((test.id, visitor_id))
        logger.debug(f"Assigned visitor {visitor_id} to variant {variant_key} of test {test.id}")
        return variant_key

    def _roll_back(self, saved: list) -> None:
        self.variant_test_repository.rollback()
        for test_id, visitor_id in saved:
            self.assignment_store.forget(test_id, visitor_id)
