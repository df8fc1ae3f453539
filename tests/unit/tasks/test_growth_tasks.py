"""Tests for the forecast and conversion counter Celery tasks.

Tasks resolve their services from the Flask app's registry, so the tests
replace current_app in each task module with a mock carrying services.
The replacement is passed explicitly so mock never touches the Flask proxy.
"""

import pytest
from unittest.mock import Mock, patch

from services.common.errors import StorageError
from tasks.conversion_tasks import rebuild_all_conversion_counters
from tasks.forecast_tasks import generate_forecast, refresh_stale_forecasts


@pytest.fixture
def mock_app():
    app = Mock()
    app.services = Mock()
    return app


@pytest.fixture
def forecast_app(mock_app):
    with patch('tasks.forecast_tasks.current_app', new=mock_app):
        yield mock_app


@pytest.fixture
def conversion_app(mock_app):
    with patch('tasks.conversion_tasks.current_app', new=mock_app):
        yield mock_app


class TestForecastTasks:

    def test_refresh_returns_summary_with_timestamp(self, forecast_app):
        forecast_service = Mock()
        forecast_service.refresh_stale_forecasts.return_value = {'refreshed': 2, 'current': 5, 'failed': 0}
        forecast_app.services.get.return_value = forecast_service

        result = refresh_stale_forecasts.apply().get()

        forecast_app.services.get.assert_called_once_with('upgrade_forecast')
        assert result['refreshed'] == 2
        assert result['current'] == 5
        assert 'timestamp' in result

    def test_refresh_retries_on_storage_error(self, forecast_app):
        forecast_service = Mock()
        forecast_service.refresh_stale_forecasts.side_effect = StorageError("Could not list clinics")
        forecast_app.services.get.return_value = forecast_service

        with patch.object(refresh_stale_forecasts, 'retry', return_value=RuntimeError('retrying')) as mock_retry:
            with pytest.raises(RuntimeError, match='retrying'):
                refresh_stale_forecasts.run()

        _, kwargs = mock_retry.call_args
        assert isinstance(kwargs['exc'], StorageError)
        assert kwargs['countdown'] == 60

    def test_generate_forecast(self, forecast_app):
        forecast_service = Mock()
        forecast_service.generate_forecast.return_value = {'id': 1, 'prediction_score': 64}
        forecast_app.services.get.return_value = forecast_service

        result = generate_forecast.apply(args=['test-clinic']).get()

        forecast_service.generate_forecast.assert_called_once_with('test-clinic')
        assert result['prediction_score'] == 64


class TestConversionTasks:

    def test_rebuild_all_reports_failures(self, conversion_app):
        clinic_repository = Mock()
        clinic_repository.list_slugs.return_value = ['a', 'b', 'c']
        tracking_service = Mock()
        tracking_service.rebuild_conversion_counters.side_effect = [
            {'total': 1}, StorageError("locked"), {'total': 0},
        ]
        conversion_app.services.get.side_effect = lambda name: {
            'clinic_repository': clinic_repository,
            'conversion_tracking': tracking_service,
        }[name]

        result = rebuild_all_conversion_counters.apply().get()

        assert result == {'rebuilt': 2, 'failed': ['b']}


class TestBeatSchedule:

    def test_beat_schedule_entries(self):
        from celery_worker import celery

        schedule = celery.conf.beat_schedule
        assert schedule['refresh-stale-forecasts']['task'] == 'tasks.forecast_tasks.refresh_stale_forecasts'
        assert schedule['rebuild-conversion-counters']['task'] == \
            'tasks.conversion_tasks.rebuild_all_conversion_counters'

    def test_tasks_registered(self):
        from celery_worker import celery

        for name in ('tasks.forecast_tasks.refresh_stale_forecasts',
                     'tasks.forecast_tasks.generate_forecast',
                     'tasks.conversion_tasks.rebuild_all_conversion_counters'):
            assert name in celery.tasks
