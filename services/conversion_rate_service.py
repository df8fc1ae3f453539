"""
ConversionRateService - conversion-rate reports over time windows.

Views are estimated from conversions (20 views per conversion, never fewer
than 100) until page views are tracked per clinic end to end. Every rate in
a report shares that estimate, so rates are comparable with each other but
not with externally measured traffic.

Trend sub-windows are half-open, [s, s + step), and the last one is clamped
to the report end and includes it. Each event therefore lands in exactly one
day and one week, and neither series reaches past the requested range.
"""

import logging
import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List

from sqlalchemy.exc import SQLAlchemyError

from logging_config import performance_logger
from repositories.clinic_repository import ClinicRepository
from repositories.conversion_event_repository import ConversionEventRepository
from services.common.errors import NotFoundError, StorageError, ValidationError
from services.growth_tables import MIN_ESTIMATED_VIEWS, VIEWS_PER_CONVERSION
from utils.datetime_utils import ensure_utc, format_utc_date, utc_now

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
ONE_WEEK = timedelta(days=7)


def estimate_views(conversions: int) -> int:
    return max(conversions * VIEWS_PER_CONVERSION, MIN_ESTIMATED_VIEWS)


def rate(conversions: int, views: int) -> float:
    return conversions / views * 100 if views > 0 else 0.0


def segment(labels: Iterable[str], total_views: int) -> Dict[str, Dict[str, Any]]:
    """Count per label; views are split evenly across the labels present"""
    counts = Counter(labels)
    views_each = total_views // max(len(counts), 1)
    return {
        label: {
            'views': views_each,
            'conversions': count,
            'rate': rate(count, views_each),
        }
        for label, count in sorted(counts.items())
    }


class ConversionRateService:
    """Read-only reporting over stored conversion events"""

    def __init__(self, conversion_event_repository: ConversionEventRepository,
                 clinic_repository: ClinicRepository,
                 clock: Callable = utc_now):
        self.conversion_event_repository = conversion_event_repository
        self.clinic_repository = clinic_repository
        self.clock = clock

    def calculate(self, clinic_slug: str, start_date: datetime, end_date: datetime,
                  include_trends: bool = True) -> Dict[str, Any]:
        """
        Conversion rate for start_date <= event time <= end_date with
        segmentation and, optionally, daily and weekly trends.

        Raises:
            ValidationError: start_date after end_date
            NotFoundError: Unknown clinic
            StorageError: Events could not be read
        """
        start, end = self._window(start_date, end_date)
        with performance_logger.timed('conversion_rate', clinic_slug=clinic_slug) as timing:
            events = self._load_events(clinic_slug, start, end)
            timing['events'] = len(events)
            return self._report(clinic_slug, events, start, end, include_trends)

    def _report(self, clinic_slug: str, events: List[Any], start: datetime, end: datetime,
                include_trends: bool) -> Dict[str, Any]:
        report = self._summarize(events)
        report['segmentation'] = {
            'by_type': segment((e.conversion_type for e in events), report['total_views']),
            'by_source': segment((self._meta(e, 'source') for e in events), report['total_views']),
            'by_device': segment((self._meta(e, 'device') for e in events), report['total_views']),
            'by_variant': segment((e.variant_id or 'control' for e in events), report['total_views']),
        }
        if include_trends:
            report['trends'] = {
                'daily': [
                    {'date': format_utc_date(s), 'rate': window['conversion_rate']}
                    for s, window in self._sub_windows(events, start, end, ONE_DAY)
                ],
                'weekly': [
                    {'week': f"Week of {format_utc_date(s)}", 'rate': window['conversion_rate']}
                    for s, window in self._sub_windows(events, start, end, ONE_WEEK)
                ],
            }

        return {
            'clinic_slug': clinic_slug,
            'period': f"{format_utc_date(start)}_to_{format_utc_date(end)}",
            'start_date': start.isoformat(),
            'end_date': end.isoformat(),
            **report,
        }

    def overall_rate(self, clinic_slug: str, days: int = 30) -> float:
        """Conversion rate over the trailing number of days"""
        end = self.clock()
        return self.calculate(clinic_slug, end - timedelta(days=days), end,
                              include_trends=False)['conversion_rate']

    def rate_by_type(self, clinic_slug: str, conversion_type: str, days: int = 30) -> float:
        """Rate of one conversion type against all estimated views in the window"""
        end = self.clock()
        start, end = self._window(end - timedelta(days=days), end)
        events = self._load_events(clinic_slug, start, end)
        matching = sum(1 for e in events if e.conversion_type == conversion_type)
        return rate(matching, estimate_views(len(events)))

    def top_performing_variants(self, clinic_slug: str, days: int = 30) -> List[Dict[str, Any]]:
        """Variants seen in the window, best rate first"""
        end = self.clock()
        start, end = self._window(end - timedelta(days=days), end)
        events = self._load_events(clinic_slug, start, end)

        counts = Counter(e.variant_id for e in events if e.variant_id)
        views_each = estimate_views(len(events)) // max(len(counts), 1)
        variants = [
            {
                'variant_id': variant_id,
                'conversions': count,
                'views': views_each,
                'conversion_rate': rate(count, views_each),
            }
            for variant_id, count in counts.items()
        ]
        return sorted(variants, key=lambda v: (-v['conversion_rate'], v['variant_id']))

    def _load_events(self, clinic_slug: str, start: datetime, end: datetime):
        try:
            if not self.clinic_repository.get_by_slug(clinic_slug):
                raise NotFoundError(f"Clinic {clinic_slug} not found")
            return self.conversion_event_repository.find_in_window(clinic_slug, start, end)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not load conversion events for {clinic_slug}") from e

    @staticmethod
    def _window(start_date: datetime, end_date: datetime):
        if start_date is None or end_date is None:
            raise ValidationError("start_date and end_date are required")
        start, end = ensure_utc(start_date), ensure_utc(end_date)
        if start > end:
            raise ValidationError("start_date must not be after end_date")
        return start, end

    @staticmethod
    def _summarize(events: List) -> Dict[str, Any]:
        total_conversions = len(events)
        total_views = estimate_views(total_conversions)
        return {
            'total_views': total_views,
            'total_conversions': total_conversions,
            'conversion_rate': rate(total_conversions, total_views),
        }

    def _sub_windows(self, events: List, start: datetime, end: datetime, step: timedelta):
        """
        Consecutive [s, s + step) windows covering the period; the last one is
        clamped to end and includes it.
        """
        count = math.ceil((end - start) / step)
        for i in range(count):
            window_start = start + step * i
            window_end = min(window_start + step, end)
            last = i == count - 1
            in_window = [
                e for e in events
                if window_start <= ensure_utc(e.occurred_at) < window_end
                or (last and ensure_utc(e.occurred_at) == end)
            ]
            yield window_start, self._summarize(in_window)

    @staticmethod
    def _meta(event, key: str) -> str:
        metadata = event.event_metadata or {}
        return metadata.get(key) or 'unknown'
