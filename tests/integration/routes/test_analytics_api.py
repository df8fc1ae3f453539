"""
Integration tests for the analytics endpoints
"""

from datetime import timedelta

import pytest

from clinic_database import ForecastLog, TestVariant, UpgradeForecast
from tests.conftest import create_test_variant_test
from utils.datetime_utils import utc_now

pytestmark = pytest.mark.integration


def track(client, conversion_type='call', session_id='s-1', **extra):
    payload = {'type': conversion_type, 'clinic_slug': 'test-clinic', 'session_id': session_id}
    payload.update(extra)
    return client.post('/api/track/conversions', json=payload)


class TestConversionRateEndpoint:

    def test_report_for_window(self, client, clean_db, clinic):
        track(client)
        track(client, 'form', variant_id='bold')
        start = (utc_now() - timedelta(days=2)).isoformat()
        end = (utc_now() + timedelta(minutes=5)).isoformat()

        response = client.get('/api/analytics/test-clinic/conversion-rate',
                              query_string={'start': start, 'end': end})

        assert response.status_code == 200
        data = response.get_json()
        assert data['total_conversions'] == 2
        assert data['total_views'] == 100
        assert data['conversion_rate'] == 2.0
        assert data['segmentation']['by_variant']['bold']['conversions'] == 1
        assert len(data['trends']['daily']) == 3

    def test_report_is_idempotent(self, client, clean_db, clinic):
        track(client)
        query = {'start': '2020-01-01', 'end': '2100-01-01', 'trends': 'false'}

        first = client.get('/api/analytics/test-clinic/conversion-rate', query_string=query).get_json()
        second = client.get('/api/analytics/test-clinic/conversion-rate', query_string=query).get_json()

        assert first == second
        assert 'trends' not in first

    def test_bad_window(self, client, clean_db, clinic):
        response = client.get('/api/analytics/test-clinic/conversion-rate',
                              query_string={'start': '2026-02-01', 'end': '2026-01-01'})
        assert response.status_code == 400

    def test_unparseable_date(self, client, clean_db, clinic):
        response = client.get('/api/analytics/test-clinic/conversion-rate', query_string={'start': 'soon'})
        assert response.status_code == 400

    def test_unknown_clinic(self, client, clean_db):
        assert client.get('/api/analytics/nope/conversion-rate').status_code == 404

    def test_top_variants(self, client, clean_db, clinic):
        track(client, variant_id='bold')
        track(client, variant_id='bold')
        track(client, variant_id='plain')

        data = client.get('/api/analytics/test-clinic/top-variants?days=7').get_json()

        assert data['days'] == 7
        assert [v['variant_id'] for v in data['variants']] == ['bold', 'plain']

    def test_top_variants_rejects_bad_days(self, client, clean_db, clinic):
        assert client.get('/api/analytics/test-clinic/top-variants?days=0').status_code == 400
        assert client.get('/api/analytics/test-clinic/top-variants?days=week').status_code == 400


class TestForecastEndpoints:

    def test_get_generates_then_reuses(self, client, clean_db, clinic):
        first = client.get('/api/analytics/test-clinic/forecast')
        second = client.get('/api/analytics/test-clinic/forecast')

        assert first.status_code == 200
        assert first.get_json()['id'] == second.get_json()['id']
        assert first.get_json()['target_tier'] == 'basic'
        assert clean_db.query(UpgradeForecast).count() == 1

    def test_post_always_generates(self, client, clean_db, clinic):
        first = client.post('/api/analytics/test-clinic/forecast')
        second = client.post('/api/analytics/test-clinic/forecast')

        assert first.status_code == 201
        assert first.get_json()['log_id'] is not None
        assert first.get_json()['id'] != second.get_json()['id']
        assert clean_db.query(ForecastLog).count() == 2

    def test_forecast_for_unknown_clinic(self, client, clean_db):
        assert client.post('/api/analytics/nope/forecast').status_code == 404

    def test_record_outcome(self, client, clean_db, clinic):
        forecast = client.post('/api/analytics/test-clinic/forecast').get_json()

        response = client.post(f"/api/analytics/forecast-logs/{forecast['log_id']}/outcome",
                               json={'upgraded': False, 'actual_tier': 'free'})

        assert response.status_code == 200
        data = response.get_json()
        assert data['actual_outcome']['upgraded'] is False
        assert data['accuracy'] == 100 - forecast['prediction_score']

    def test_record_outcome_validation(self, client, clean_db, clinic):
        forecast = client.post('/api/analytics/test-clinic/forecast').get_json()

        response = client.post(f"/api/analytics/forecast-logs/{forecast['log_id']}/outcome",
                               json={'upgraded': 'maybe'})
        assert response.status_code == 400

        missing = client.post('/api/analytics/forecast-logs/999999/outcome', json={'upgraded': True})
        assert missing.status_code == 404


class TestVariantTestAdministration:

    def _create(self, client, **overrides):
        payload = {
            'name': 'Header copy',
            'type': 'seo_header',
            'variants': [
                {'id': 'plain', 'name': 'Plain', 'content': {'title': 'Dentist'}},
                {'id': 'bold', 'name': 'Bold', 'content': {'title': 'Best Dentist'}},
            ],
        }
        payload.update(overrides)
        return client.post('/api/analytics/test-clinic/variant-tests', json=payload)

    def test_lifecycle(self, client, clean_db, clinic):
        created = self._create(client)
        assert created.status_code == 201
        test = created.get_json()
        assert test['status'] == 'draft'
        assert test['variants'][0]['is_control'] is True

        started = client.post(f"/api/analytics/variant-tests/{test['id']}/status", json={'status': 'running'})
        assert started.get_json()['status'] == 'running'
        assert started.get_json()['start_date'] is not None

        listed = client.get('/api/analytics/test-clinic/variant-tests').get_json()
        assert [t['id'] for t in listed] == [test['id']]

        completed = client.post(f"/api/analytics/variant-tests/{test['id']}/status", json={'status': 'completed'})
        assert completed.get_json()['end_date'] is not None

        restarted = client.post(f"/api/analytics/variant-tests/{test['id']}/status", json={'status': 'running'})
        assert restarted.status_code == 400
        assert restarted.get_json()['code'] == 'INVALID_TRANSITION'

    def test_invalid_test(self, client, clean_db, clinic):
        response = self._create(client, variants=[{'id': 'only'}])

        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_TEST'

    def test_unknown_clinic(self, client, clean_db):
        response = self._create(client)
        assert response.status_code == 404
        assert response.get_json()['code'] == 'CLINIC_NOT_FOUND'

    def test_unknown_test(self, client, clean_db):
        response = client.get('/api/analytics/variant-tests/missing')
        assert response.status_code == 404
        assert response.get_json()['code'] == 'TEST_NOT_FOUND'

    def test_status_required(self, client, clean_db, clinic):
        test = self._create(client).get_json()
        response = client.post(f"/api/analytics/variant-tests/{test['id']}/status", json={})
        assert response.status_code == 400

    def test_evaluate_picks_winner(self, client, clean_db, clinic):
        test = create_test_variant_test()
        clean_db.add(test)
        clean_db.commit()
        counts = {'control': (1000, 10), 'bold': (1000, 50)}
        for variant in clean_db.query(TestVariant).filter_by(test_id=test.id):
            variant.views, variant.conversions = counts[variant.variant_key]
        clean_db.commit()

        response = client.post(f'/api/analytics/variant-tests/{test.id}/evaluate')

        assert response.status_code == 200
        data = response.get_json()
        assert data['winner'] == 'bold'
        results = {r['variant_id']: r for r in data['results']}
        assert results['bold']['is_winner'] is True
        assert results['bold']['conversion_rate'] == pytest.approx(5.0)
        assert results['control']['is_winner'] is False
