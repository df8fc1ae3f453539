"""
VariantTestService - create variant tests, move them through their lifecycle
and evaluate results with a chi-square test against the control variant.
"""

from typing import Any, Callable, Dict, List, Optional
import logging

import numpy as np
from scipy import stats
from sqlalchemy.exc import SQLAlchemyError

from services.common.result import Result
from services.enums import PrimaryMetric, VariantTestStatus, VariantTestType
from repositories.clinic_repository import ClinicRepository
from repositories.variant_test_repository import VariantTestRepository
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

# Allowed status moves; completed is terminal
STATUS_TRANSITIONS = {
    VariantTestStatus.DRAFT.value: {VariantTestStatus.RUNNING.value},
    VariantTestStatus.RUNNING.value: {VariantTestStatus.PAUSED.value, VariantTestStatus.COMPLETED.value},
    VariantTestStatus.PAUSED.value: {VariantTestStatus.RUNNING.value, VariantTestStatus.COMPLETED.value},
    VariantTestStatus.COMPLETED.value: set(),
}

MIN_SAMPLE_SIZE = 30


class VariantTestService:
    """Admin operations on variant tests. Every method returns a Result."""

    def __init__(self, variant_test_repository: VariantTestRepository,
                 clinic_repository: ClinicRepository,
                 clock: Callable = utc_now):
        self.variant_test_repository = variant_test_repository
        self.clinic_repository = clinic_repository
        self.clock = clock

    def create_test(self, data: Dict[str, Any]) -> Result[Dict[str, Any]]:
        """
        Create a draft test. When no variant is flagged as control the first
        one becomes the control.
        """
        errors = self._validate_test_data(data)
        if errors:
            return Result.failure('; '.join(errors), code='INVALID_TEST')

        try:
            if not self.clinic_repository.get_by_slug(data['clinic_slug']):
                return Result.failure(f"Clinic {data['clinic_slug']} not found", code='CLINIC_NOT_FOUND')

            variants = [self._variant_fields(v) for v in data['variants']]
            if not any(v['is_control'] for v in variants):
                variants[0]['is_control'] = True

            test = self.variant_test_repository.create_with_variants(
                {
                    'clinic_slug': data['clinic_slug'],
                    'name': data['name'].strip(),
                    'description': data.get('description'),
                    'test_type': data['type'],
                    'status': VariantTestStatus.DRAFT.value,
                    'traffic_allocation': int(data.get('traffic_allocation', 100)),
                    'target_sample_size': data.get('target_sample_size'),
                    'confidence_level': int(data.get('confidence_level', 95)),
                    'primary_metric': data.get('primary_metric', PrimaryMetric.CONVERSION_RATE.value),
                    'created_by': data.get('created_by'),
                },
                variants,
            )
            self.variant_test_repository.commit()
            logger.info(f"Created variant test {test.id} for clinic {test.clinic_slug}")
            return Result.success(test.to_dict())
        except SQLAlchemyError as e:
            self.variant_test_repository.rollback()
            logger.error(f"Error creating variant test: {e}")
            return Result.failure('Could not save variant test', code='DB_ERROR')

    def get_test(self, test_id: str) -> Result[Dict[str, Any]]:
        try:
            test = self.variant_test_repository.get_by_id(test_id)
        except SQLAlchemyError as e:
            logger.error(f"Error loading variant test {test_id}: {e}")
            return Result.failure('Could not load variant test', code='DB_ERROR')
        if not test:
            return Result.failure(f"Variant test {test_id} not found", code='TEST_NOT_FOUND')
        return Result.success(test.to_dict())

    def list_tests(self, clinic_slug: str) -> Result[List[Dict[str, Any]]]:
        try:
            tests = self.variant_test_repository.find_by_clinic(clinic_slug)
        except SQLAlchemyError as e:
            logger.error(f"Error listing variant tests for {clinic_slug}: {e}")
            return Result.failure('Could not load variant tests', code='DB_ERROR')
        return Result.success([t.to_dict(include_results=False) for t in tests])

    def update_status(self, test_id: str, status: str) -> Result[Dict[str, Any]]:
        """
        Move a test to a new status. Starting stamps start_date (resuming a
        paused test keeps the original one); completing stamps end_date.
        """
        try:
            test = self.variant_test_repository.get_by_id(test_id)
            if not test:
                return Result.failure(f"Variant test {test_id} not found", code='TEST_NOT_FOUND')

            if status not in STATUS_TRANSITIONS:
                return Result.failure(f"Unknown status {status!r}", code='INVALID_TRANSITION')
            if status not in STATUS_TRANSITIONS[test.status]:
                return Result.failure(
                    f"Cannot move test from {test.status} to {status}",
                    code='INVALID_TRANSITION'
                )

            updates = {'status': status}
            now = self.clock()
            if status == VariantTestStatus.RUNNING.value and test.start_date is None:
                updates['start_date'] = now
            if status == VariantTestStatus.COMPLETED.value:
                updates['end_date'] = now

            previous = test.status
            self.variant_test_repository.update(test, **updates)
            self.variant_test_repository.commit()
            logger.info(f"Variant test {test_id} moved from {previous} to {status}")
            return Result.success(test.to_dict())
        except SQLAlchemyError as e:
            self.variant_test_repository.rollback()
            logger.error(f"Error updating status of variant test {test_id}: {e}")
            return Result.failure('Could not update variant test', code='DB_ERROR')

    def evaluate_results(self, test_id: str) -> Result[Dict[str, Any]]:
        """
        Recompute each variant's conversion rate and its confidence of
        differing from control; flag a winner when one clears the test's
        confidence level and beats control.
        """
        try:
            test = self.variant_test_repository.get_by_id(test_id)
            if not test:
                return Result.failure(f"Variant test {test_id} not found", code='TEST_NOT_FOUND')
            if not test.variants:
                return Result.failure(f"Variant test {test_id} has no variants", code='INVALID_TEST')

            control = next((v for v in test.variants if v.is_control), test.variants[0])
            threshold = (test.confidence_level or 95) / 100
            control_rate = self._rate(control)

            best = None
            for variant in test.variants:
                rate = self._rate(variant)
                confidence = 0.0 if variant is control else self.calculate_confidence(
                    control.conversions, control.views, variant.conversions, variant.views
                )
                self.variant_test_repository.save_variant_results(variant, rate, confidence, False)
                if variant is not control and confidence >= threshold and rate > control_rate:
                    if best is None or rate > best.conversion_rate:
                        best = variant

            if best is not None:
                self.variant_test_repository.save_variant_results(
                    best, best.conversion_rate, best.confidence, True
                )

            self.variant_test_repository.commit()
            data = test.to_dict()
            data['winner'] = best.variant_key if best else None
            return Result.success(data)
        except SQLAlchemyError as e:
            self.variant_test_repository.rollback()
            logger.error(f"Error evaluating variant test {test_id}: {e}")
            return Result.failure('Could not evaluate variant test', code='DB_ERROR')

    @staticmethod
    def calculate_confidence(control_conversions: int, control_views: int,
                             variant_conversions: int, variant_views: int) -> float:
        """
        1 - p of a chi-square test on the 2x2 converted/not-converted table.
        Returns 0.0 below the minimum sample size or when the table is degenerate.
        """
        if control_views < MIN_SAMPLE_SIZE or variant_views < MIN_SAMPLE_SIZE:
            return 0.0

        table = np.array([
            [control_conversions, max(control_views - control_conversions, 0)],
            [variant_conversions, max(variant_views - variant_conversions, 0)],
        ])
        # chi2_contingency rejects tables with an all-zero row or column
        if (table.sum(axis=0) == 0).any() or (table.sum(axis=1) == 0).any():
            return 0.0

        _, p_value, _, _ = stats.chi2_contingency(table)
        return float(1 - p_value)

    @staticmethod
    def _rate(variant) -> float:
        if not variant.views:
            return 0.0
        return round(variant.conversions / variant.views * 100, 4)

    @staticmethod
    def _variant_fields(variant: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'variant_key': str(variant['id']),
            'name': variant.get('name') or str(variant['id']),
            'content': variant.get('content'),
            'weight': int(variant.get('weight', 50)),
            'is_control': bool(variant.get('is_control', False)),
        }

    def _validate_test_data(self, data: Dict[str, Any]) -> List[str]:
        errors = []
        if not self._text(data.get('clinic_slug')):
            errors.append('clinic_slug is required')
        if not self._text(data.get('name')):
            errors.append('name is required')

        valid_types = {t.value for t in VariantTestType}
        test_type = data.get('type')
        if not isinstance(test_type, str) or test_type not in valid_types:
            errors.append(f"type must be one of {sorted(valid_types)}")

        metric = data.get('primary_metric', PrimaryMetric.CONVERSION_RATE.value)
        if not isinstance(metric, str) or metric not in {m.value for m in PrimaryMetric}:
            errors.append(f"Unknown primary_metric {metric!r}")

        if not self._int_between(data.get('traffic_allocation', 100), 0, 100):
            errors.append('traffic_allocation must be an integer between 0 and 100')
        if not self._int_between(data.get('confidence_level', 95), 50, 99):
            errors.append('confidence_level must be an integer between 50 and 99')
        sample = data.get('target_sample_size')
        if sample is not None and not self._int_between(sample, 1, None):
            errors.append('target_sample_size must be a positive integer')

        variants = data.get('variants')
        if not isinstance(variants, list) or len(variants) < 2:
            errors.append('at least two variants are required')
            return errors

        keys = set()
        controls = 0
        for variant in variants:
            variant_id = variant.get('id') if isinstance(variant, dict) else None
            if isinstance(variant_id, bool) or not isinstance(variant_id, (str, int)) or not str(variant_id).strip():
                errors.append('every variant needs an id')
                continue
            key = str(variant_id)
            if key in keys:
                errors.append(f"duplicate variant id {key!r}")
            keys.add(key)
            if not self._int_between(variant.get('weight', 50), 0, 100):
                errors.append(f"weight of variant {key!r} must be an integer between 0 and 100")
            if variant.get('is_control'):
                controls += 1
        if controls > 1:
            errors.append('only one variant can be the control')
        return errors

    @staticmethod
    def _text(value: Any) -> bool:
        return isinstance(value, str) and bool(value.strip())

    @staticmethod
    def _int_between(value: Any, low: int, high: Optional[int]) -> bool:
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        if value < low:
            return False
        return high is None or value <= high
