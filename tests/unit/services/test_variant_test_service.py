"""
Tests for VariantTestService lifecycle and result evaluation
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from repositories.clinic_repository import ClinicRepository
from repositories.variant_test_repository import VariantTestRepository
from services.variant_test_service import VariantTestService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def valid_payload(**overrides):
    data = {
        'clinic_slug': 'test-clinic',
        'name': 'Header copy',
        'type': 'seo_header',
        'variants': [
            {'id': 'plain', 'name': 'Plain', 'content': {'title': 'Dentist'}, 'weight': 50},
            {'id': 'bold', 'name': 'Bold', 'content': {'title': 'Best Dentist'}, 'weight': 50},
        ],
    }
    data.update(overrides)
    return data


def make_variant(key, views, conversions, is_control=False):
    return SimpleNamespace(variant_key=key, views=views, conversions=conversions, is_control=is_control,
                           conversion_rate=0.0, confidence=0.0, is_winner=False)


class TestVariantTestService:

    @pytest.fixture
    def mock_test_repository(self):
        return Mock(spec=VariantTestRepository)

    @pytest.fixture
    def mock_clinic_repository(self):
        repo = Mock(spec=ClinicRepository)
        repo.get_by_slug.return_value = SimpleNamespace(slug='test-clinic')
        return repo

    @pytest.fixture
    def service(self, mock_test_repository, mock_clinic_repository):
        return VariantTestService(mock_test_repository, mock_clinic_repository, clock=lambda: NOW)

    # ===== Creation =====

    def test_create_test_defaults_first_variant_to_control(self, service, mock_test_repository):
        created = Mock()
        created.to_dict.return_value = {'id': 'abc', 'status': 'draft'}
        mock_test_repository.create_with_variants.return_value = created

        result = service.create_test(valid_payload())

        assert result.is_success
        assert result.data == {'id': 'abc', 'status': 'draft'}
        test_fields, variants = mock_test_repository.create_with_variants.call_args[0]
        assert test_fields['status'] == 'draft'
        assert test_fields['traffic_allocation'] == 100
        assert test_fields['confidence_level'] == 95
        assert [v['is_control'] for v in variants] == [True, False]
        assert variants[1]['variant_key'] == 'bold'
        mock_test_repository.commit.assert_called_once()

    def test_create_test_keeps_explicit_control(self, service, mock_test_repository):
        payload = valid_payload()
        payload['variants'][1]['is_control'] = True

        service.create_test(payload)

        _, variants = mock_test_repository.create_with_variants.call_args[0]
        assert [v['is_control'] for v in variants] == [False, True]

    @pytest.mark.parametrize('overrides', [
        {'variants': [{'id': 'only', 'weight': 100}]},
        {'variants': [{'id': 'a'}, {'id': 'a'}]},
        {'variants': [{'id': 'a', 'is_control': True}, {'id': 'b', 'is_control': True}]},
        {'variants': [{'id': 'a', 'weight': 150}, {'id': 'b'}]},
        {'confidence_level': 40},
        {'confidence_level': 100},
        {'traffic_allocation': 101},
        {'traffic_allocation': '50'},
        {'type': 'banner'},
        {'primary_metric': 'revenue'},
        {'name': '   '},
        {'target_sample_size': 0},
        {'name': 42},
        {'type': ['headline']},
        {'clinic_slug': {'slug': 'test-clinic'}},
        {'primary_metric': ['conversion_rate']},
        {'variants': [{'id': ['a']}, {'id': 'b'}]},
    ])
    def test_create_test_rejects_invalid_input(self, service, mock_test_repository, overrides):
        result = service.create_test(valid_payload(**overrides))

        assert result.is_failure
        assert result.error_code == 'INVALID_TEST'
        mock_test_repository.create_with_variants.assert_not_called()

    def test_create_test_for_unknown_clinic(self, service, mock_clinic_repository):
        mock_clinic_repository.get_by_slug.return_value = None

        result = service.create_test(valid_payload())

        assert result.error_code == 'CLINIC_NOT_FOUND'

    def test_create_test_database_error(self, service, mock_test_repository):
        mock_test_repository.create_with_variants.side_effect = OperationalError('INSERT', {}, Exception('x'))

        result = service.create_test(valid_payload())

        assert result.error_code == 'DB_ERROR'
        mock_test_repository.rollback.assert_called_once()

    # ===== Lifecycle =====

    def _stored_test(self, mock_test_repository, status, start_date=None):
        test = Mock()
        test.status = status
        test.start_date = start_date
        test.to_dict.return_value = {'id': 'abc'}
        mock_test_repository.get_by_id.return_value = test
        return test

    def test_starting_a_draft_stamps_start_date(self, service, mock_test_repository):
        test = self._stored_test(mock_test_repository, 'draft')

        result = service.update_status('abc', 'running')

        assert result.is_success
        mock_test_repository.update.assert_called_once_with(test, status='running', start_date=NOW)

    def test_resuming_keeps_original_start_date(self, service, mock_test_repository):
        started = datetime(2026, 1, 1, tzinfo=timezone.utc)
        test = self._stored_test(mock_test_repository, 'paused', start_date=started)

        service.update_status('abc', 'running')

        mock_test_repository.update.assert_called_once_with(test, status='running')

    def test_completing_stamps_end_date(self, service, mock_test_repository):
        test = self._stored_test(mock_test_repository, 'running', start_date=NOW)

        service.update_status('abc', 'completed')

        mock_test_repository.update.assert_called_once_with(test, status='completed', end_date=NOW)

    @pytest.mark.parametrize('current,target', [
        ('completed', 'running'),
        ('draft', 'paused'),
        ('draft', 'completed'),
        ('running', 'draft'),
        ('running', 'archived'),
    ])
    def test_invalid_transitions(self, service, mock_test_repository, current, target):
        self._stored_test(mock_test_repository, current)

        result = service.update_status('abc', target)

        assert result.error_code == 'INVALID_TRANSITION'
        mock_test_repository.update.assert_not_called()

    def test_update_status_of_missing_test(self, service, mock_test_repository):
        mock_test_repository.get_by_id.return_value = None
        assert service.update_status('nope', 'running').error_code == 'TEST_NOT_FOUND'

    def test_get_and_list(self, service, mock_test_repository):
        mock_test_repository.get_by_id.return_value = None
        assert service.get_test('nope').error_code == 'TEST_NOT_FOUND'

        stored = Mock()
        stored.to_dict.return_value = {'id': 'abc'}
        mock_test_repository.find_by_clinic.return_value = [stored]
        assert service.list_tests('test-clinic').data == [{'id': 'abc'}]
        stored.to_dict.assert_called_with(include_results=False)

    # ===== Results =====

    def test_confidence_is_zero_below_minimum_sample(self):
        assert VariantTestService.calculate_confidence(5, 29, 20, 500) == 0.0

    def test_confidence_is_zero_without_any_conversions(self):
        assert VariantTestService.calculate_confidence(0, 100, 0, 100) == 0.0

    def test_identical_results_have_no_confidence(self):
        assert VariantTestService.calculate_confidence(10, 100, 10, 100) == pytest.approx(0.0, abs=1e-9)

    def test_large_difference_is_significant(self):
        assert VariantTestService.calculate_confidence(10, 1000, 50, 1000) > 0.99

    def test_evaluate_flags_significant_better_variant(self, service, mock_test_repository):
        control = make_variant('plain', 1000, 10, is_control=True)
        challenger = make_variant('bold', 1000, 50)
        test = Mock()
        test.variants = [control, challenger]
        test.confidence_level = 95
        test.to_dict.return_value = {'id': 'abc'}
        mock_test_repository.get_by_id.return_value = test

        def save(variant, rate, confidence, is_winner):
            variant.conversion_rate, variant.confidence, variant.is_winner = rate, confidence, is_winner
        mock_test_repository.save_variant_results.side_effect = save

        result = service.evaluate_results('abc')

        assert result.data['winner'] == 'bold'
        assert challenger.is_winner is True
        assert challenger.conversion_rate == pytest.approx(5.0)
        assert control.is_winner is False
        assert control.confidence == 0.0
        mock_test_repository.commit.assert_called_once()

    def test_evaluate_without_significance_has_no_winner(self, service, mock_test_repository):
        test = Mock()
        test.variants = [make_variant('plain', 100, 10, is_control=True), make_variant('bold', 100, 12)]
        test.confidence_level = 95
        test.to_dict.return_value = {'id': 'abc'}
        mock_test_repository.get_by_id.return_value = test

        result = service.evaluate_results('abc')

        assert result.data['winner'] is None
