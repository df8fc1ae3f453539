"""
Tests for ConversionRateService reports
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from repositories.clinic_repository import ClinicRepository
from repositories.conversion_event_repository import ConversionEventRepository
from services.common.errors import NotFoundError, StorageError, ValidationError
from services.conversion_rate_service import ConversionRateService, estimate_views, segment

START = datetime(2026, 4, 1, tzinfo=timezone.utc)
END = datetime(2026, 4, 15, tzinfo=timezone.utc)


def make_event(conversion_type='call', day=1, variant_id=None, source='organic', device='mobile'):
    return SimpleNamespace(
        conversion_type=conversion_type,
        occurred_at=datetime(2026, 4, day, 12, 0),
        variant_id=variant_id,
        event_metadata={'source': source, 'device': device},
    )


class TestViewEstimate:

    def test_minimum_views(self):
        assert estimate_views(0) == 100
        assert estimate_views(5) == 100

    def test_views_scale_with_conversions(self):
        assert estimate_views(6) == 120

    def test_segment_splits_views_evenly(self):
        result = segment(['call', 'call', 'form'], 100)
        assert result['call'] == {'views': 50, 'conversions': 2, 'rate': 4.0}
        assert result['form']['rate'] == 2.0


class TestConversionRateService:

    @pytest.fixture
    def event_repo(self):
        return Mock(spec=ConversionEventRepository)

    @pytest.fixture
    def clinic_repo(self):
        repo = Mock(spec=ClinicRepository)
        repo.get_by_slug.return_value = SimpleNamespace(slug='test-clinic')
        return repo

    @pytest.fixture
    def service(self, event_repo, clinic_repo):
        return ConversionRateService(event_repo, clinic_repo, clock=lambda: END)

    def test_no_events(self, service, event_repo):
        event_repo.find_in_window.return_value = []

        report = service.calculate('test-clinic', START, END)

        assert report['total_views'] == 100
        assert report['total_conversions'] == 0
        assert report['conversion_rate'] == 0.0
        assert report['period'] == '2026-04-01_to_2026-04-15'
        assert report['segmentation']['by_type'] == {}

    def test_rate_and_segmentation(self, service, event_repo):
        event_repo.find_in_window.return_value = [
            make_event('call', 2, variant_id='bold'),
            make_event('call', 3, source='direct'),
            make_event('form', 3, device='desktop'),
            make_event('booking', 10),
        ]

        report = service.calculate('test-clinic', START, END)

        assert report['total_conversions'] == 4
        assert report['conversion_rate'] == pytest.approx(4.0)
        assert report['segmentation']['by_type']['call']['conversions'] == 2
        assert report['segmentation']['by_type']['call']['views'] == 33
        assert report['segmentation']['by_variant']['control']['conversions'] == 3
        assert report['segmentation']['by_source']['direct']['conversions'] == 1
        assert report['segmentation']['by_device']['desktop']['conversions'] == 1

    def test_trends_cover_the_period(self, service, event_repo):
        event_repo.find_in_window.return_value = [make_event('call', 2), make_event('call', 2)]

        report = service.calculate('test-clinic', START, END)

        daily = report['trends']['daily']
        assert len(daily) == 14
        assert daily[0] == {'date': '2026-04-01', 'rate': 0.0}
        assert daily[1] == {'date': '2026-04-02', 'rate': 2.0}
        weekly = report['trends']['weekly']
        assert [w['week'] for w in weekly] == ['Week of 2026-04-01', 'Week of 2026-04-08']
        assert weekly[0]['rate'] == 2.0

    def test_event_at_end_counts_in_last_window(self, service, event_repo):
        end = datetime(2026, 4, 3, tzinfo=timezone.utc)
        event_repo.find_in_window.return_value = [SimpleNamespace(
            conversion_type='call', occurred_at=end, variant_id=None, event_metadata=None)]

        report = service.calculate('test-clinic', START, end)

        assert report['trends']['daily'][-1]['rate'] == 1.0
        assert report['segmentation']['by_source']['unknown']['conversions'] == 1

    def test_boundary_event_counts_in_one_day_only(self, service, event_repo):
        midnight = datetime(2026, 4, 2, tzinfo=timezone.utc)
        event_repo.find_in_window.return_value = [SimpleNamespace(
            conversion_type='call', occurred_at=midnight, variant_id=None, event_metadata=None)]

        report = service.calculate('test-clinic', START, datetime(2026, 4, 10, tzinfo=timezone.utc))

        daily = report['trends']['daily']
        assert [d['rate'] for d in daily[:3]] == [0.0, 1.0, 0.0]
        assert sum(d['rate'] for d in daily) == 1.0
        weekly = report['trends']['weekly']
        assert [w['rate'] for w in weekly] == [1.0, 0.0]

    def test_without_trends(self, service, event_repo):
        event_repo.find_in_window.return_value = []
        assert 'trends' not in service.calculate('test-clinic', START, END, include_trends=False)

    def test_start_after_end(self, service, event_repo):
        with pytest.raises(ValidationError):
            service.calculate('test-clinic', END, START)
        event_repo.find_in_window.assert_not_called()

    def test_unknown_clinic(self, service, clinic_repo):
        clinic_repo.get_by_slug.return_value = None
        with pytest.raises(NotFoundError):
            service.calculate('nope', START, END)

    def test_read_failure(self, service, event_repo):
        event_repo.find_in_window.side_effect = OperationalError('SELECT', {}, Exception('x'))
        with pytest.raises(StorageError):
            service.calculate('test-clinic', START, END)

    def test_top_performing_variants(self, service, event_repo):
        event_repo.find_in_window.return_value = [
            make_event(variant_id='plain'),
            make_event(variant_id='bold'),
            make_event(variant_id='bold'),
            make_event(),
        ]

        variants = service.top_performing_variants('test-clinic', days=14)

        assert [v['variant_id'] for v in variants] == ['bold', 'plain']
        assert variants[0]['views'] == 50
        assert variants[0]['conversion_rate'] == 4.0
        start, end = event_repo.find_in_window.call_args[0][1:]
        assert end - start == timedelta(days=14)

    def test_rate_by_type(self, service, event_repo):
        event_repo.find_in_window.return_value = [make_event('call'), make_event('form')]
        assert service.rate_by_type('test-clinic', 'call') == 1.0

    def test_overall_rate(self, service, event_repo):
        event_repo.find_in_window.return_value = [make_event()] * 3
        assert service.overall_rate('test-clinic') == 3.0
