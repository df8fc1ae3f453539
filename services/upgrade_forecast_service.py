"""
UpgradeForecastService - scores how likely a clinic is to move up a tier.

Raw inputs come from sessions, conversion events and the CRM contact log;
the scoring rules live in services.forecast_scoring. Forecasts are stored
with an expiry and never extended: a stale forecast is replaced by a new one.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping

from sqlalchemy.exc import SQLAlchemyError

from logging_config import performance_logger
from repositories.clinic_repository import ClinicRepository, ClinicContactRepository
from repositories.conversion_event_repository import ConversionEventRepository
from repositories.forecast_repository import ForecastLogRepository, UpgradeForecastRepository
from repositories.visitor_session_repository import VisitorSessionRepository
from services import forecast_scoring as scoring
from services.common.errors import GrowthServiceError, NotFoundError, StorageError, ValidationError
from services.conversion_rate_service import ConversionRateService
from services.enums import ForecastType, UpgradeMode
from services.growth_tables import (
    DEFAULT_FORECAST_WEIGHTS,
    ENGAGED_SESSION_SECONDS,
    FORECAST_MODEL_VERSION,
    TIER_PRICING,
    ForecastWeights,
)
from utils.datetime_utils import ensure_utc, format_utc_date, utc_now

logger = logging.getLogger(__name__)

WINDOW = timedelta(days=30)


class UpgradeForecastService:
    """Generates, stores and audits upgrade forecasts"""

    def __init__(self, clinic_repository: ClinicRepository,
                 clinic_contact_repository: ClinicContactRepository,
                 visitor_session_repository: VisitorSessionRepository,
                 conversion_event_repository: ConversionEventRepository,
                 conversion_rate_service: ConversionRateService,
                 upgrade_forecast_repository: UpgradeForecastRepository,
                 forecast_log_repository: ForecastLogRepository,
                 weights: ForecastWeights = DEFAULT_FORECAST_WEIGHTS,
                 tier_pricing: Mapping[str, int] = TIER_PRICING,
                 ttl_days: int = 7,
                 clock: Callable = utc_now):
        if not weights.validate():
            raise ValueError("Forecast weights must sum to 1.0")
        self.clinic_repository = clinic_repository
        self.clinic_contact_repository = clinic_contact_repository
        self.visitor_session_repository = visitor_session_repository
        self.conversion_event_repository = conversion_event_repository
        self.conversion_rate_service = conversion_rate_service
        self.upgrade_forecast_repository = upgrade_forecast_repository
        self.forecast_log_repository = forecast_log_repository
        self.weights = weights
        self.tier_pricing = tier_pricing
        self.ttl = timedelta(days=ttl_days)
        self.clock = clock

    def generate_forecast(self, clinic_slug: str) -> Dict[str, Any]:
        """
        Compute, store and audit a fresh forecast.

        Raises:
            NotFoundError: Unknown clinic
            StorageError: Inputs could not be read or the forecast not saved
        """
        started = time.perf_counter()
        now = ensure_utc(self.clock())
        clinic = self._get_clinic(clinic_slug)

        try:
            factors = self.collect_factors(clinic, now)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read forecast inputs for {clinic_slug}") from e

        current_tier = scoring.canonical_tier(clinic.tier)
        target_tier = scoring.next_tier(current_tier)
        score = scoring.score_factors(factors, self.weights)

        fields = {
            'clinic_slug': clinic_slug,
            'forecast_date': now,
            'upgrade_mode': UpgradeMode.TIER.value,
            'current_tier': current_tier,
            'target_tier': target_tier,
            'prediction_score': score,
            'confidence': scoring.classify_confidence(score),
            'factors': factors.to_dict(),
            'predicted_revenue': scoring.predicted_revenue(target_tier, self.tier_pricing),
            'timeframe_days': scoring.timeframe_days(score),
            'recommended_actions': scoring.recommended_actions(factors, score, current_tier),
            'created_at': now,
            'expires_at': now + self.ttl,
        }

        try:
            forecast = self.upgrade_forecast_repository.create(**fields)
            self.upgrade_forecast_repository.commit()
        except SQLAlchemyError as e:
            self.upgrade_forecast_repository.rollback()
            raise StorageError(f"Could not save forecast for {clinic_slug}") from e

        result = forecast.to_dict()
        result['log_id'] = self._log_forecast(forecast, now)

        performance_logger.log_computation(
            'upgrade_forecast', (time.perf_counter() - started) * 1000,
            clinic_slug=clinic_slug, score=score
        )
        logger.info(f"Forecast {forecast.id} for {clinic_slug}: score {score}, target {target_tier}")
        return result

    def get_current_forecast(self, clinic_slug: str) -> Dict[str, Any]:
        """Latest unexpired forecast, or a newly generated one"""
        now = ensure_utc(self.clock())
        try:
            existing = self.upgrade_forecast_repository.get_latest_unexpired(clinic_slug, now)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not load forecast for {clinic_slug}") from e
        if existing is not None:
            return existing.to_dict()
        return self.generate_forecast(clinic_slug)

    def record_forecast_outcome(self, log_id: int, upgraded: bool, actual_tier: str = None) -> Dict[str, Any]:
        """
        Store what actually happened after a forecast. Accuracy is the
        predicted score when the clinic upgraded and its complement otherwise.
        """
        if not isinstance(upgraded, bool):
            raise ValidationError("upgraded must be true or false")
        try:
            log = self.forecast_log_repository.get_by_id(log_id)
            if log is None:
                raise NotFoundError(f"Forecast log {log_id} not found")

            score = int((log.prediction or {}).get('prediction_score', 0))
            outcome = {
                'upgraded': upgraded,
                'actual_tier': actual_tier,
                'recorded_at': ensure_utc(self.clock()).isoformat(),
            }
            self.forecast_log_repository.update(
                log, actual_outcome=outcome, accuracy=score if upgraded else 100 - score
            )
            self.forecast_log_repository.commit()
            return log.to_dict()
        except SQLAlchemyError as e:
            self.forecast_log_repository.rollback()
            raise StorageError(f"Could not record outcome for forecast log {log_id}") from e

    def refresh_stale_forecasts(self) -> Dict[str, int]:
        """Generate a forecast for every clinic without an unexpired one"""
        now = ensure_utc(self.clock())
        summary = {'refreshed': 0, 'current': 0, 'failed': 0}
        try:
            slugs = self.clinic_repository.list_slugs()
        except SQLAlchemyError as e:
            raise StorageError("Could not list clinics") from e

        for slug in slugs:
            try:
                if self.upgrade_forecast_repository.get_latest_unexpired(slug, now) is not None:
                    summary['current'] += 1
                    continue
                self.generate_forecast(slug)
                summary['refreshed'] += 1
            except (GrowthServiceError, SQLAlchemyError) as e:
                summary['failed'] += 1
                logger.error(f"Forecast refresh failed for {slug}: {e}")
        return summary

    def collect_factors(self, clinic, now: datetime) -> scoring.ForecastFactors:
        """Raw factor values for a clinic as of `now`"""
        slug = clinic.slug
        recent_start, previous_start = now - WINDOW, now - WINDOW * 2

        traffic_trend = scoring.calculate_trend(
            self.visitor_session_repository.sum_page_views(slug, recent_start, now),
            self.visitor_session_repository.sum_page_views(slug, previous_start, recent_start),
        )
        revenue_growth = scoring.calculate_growth_percent(
            self.conversion_event_repository.sum_value_in_window(slug, recent_start, now),
            self.conversion_event_repository.sum_value_in_window(slug, previous_start, recent_start),
        )
        conversion_trend = scoring.calculate_trend(
            self.conversion_rate_service.calculate(slug, recent_start, now, include_trends=False)['conversion_rate'],
            self.conversion_rate_service.calculate(slug, previous_start, recent_start, include_trends=False)['conversion_rate'],
        )

        return scoring.ForecastFactors(
            traffic_trend=traffic_trend,
            engagement_score=self._engagement_score(slug, recent_start, now),
            revenue_growth=round(revenue_growth, 2),
            competitor_activity=scoring.competitor_activity(),
            seasonality=scoring.seasonality_for_month(now.month),
            contact_frequency=self._days_since_contact(clinic, now),
            conversion_trend=conversion_trend,
            content_quality=scoring.content_quality_score(clinic),
            tier_position=scoring.tier_position_score(scoring.canonical_tier(clinic.tier)),
        )

    def _engagement_score(self, clinic_slug: str, start: datetime, end: datetime) -> float:
        """
        0-100 from recent sessions: 40 points for not bouncing, 40 for time
        on site (full marks at three minutes), 20 for converting.
        """
        sessions = self.visitor_session_repository.find_started_between(clinic_slug, start, end)
        if not sessions:
            return 0.0
        total = len(sessions)
        bounce_rate = sum(1 for s in sessions if (s.page_views or 0) <= 1) / total
        avg_duration = sum(s.duration_seconds or 0 for s in sessions) / total
        converted_share = sum(1 for s in sessions if s.is_converted) / total
        score = (40 * (1 - bounce_rate)
                 + 40 * min(1.0, avg_duration / ENGAGED_SESSION_SECONDS)
                 + 20 * converted_share)
        return round(score, 2)

    def _days_since_contact(self, clinic, now: datetime) -> int:
        last_contact = self.clinic_contact_repository.get_last_contact_at(clinic.slug)
        reference = ensure_utc(last_contact or clinic.created_at or now)
        return max((now - reference).days, 0)

    def _get_clinic(self, clinic_slug: str):
        try:
            clinic = self.clinic_repository.get_by_slug(clinic_slug)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not load clinic {clinic_slug}") from e
        if clinic is None:
            raise NotFoundError(f"Clinic {clinic_slug} not found")
        return clinic

    def _log_forecast(self, forecast, now: datetime):
        """Audit entry for a stored forecast; failures are logged, not raised"""
        try:
            log = self.forecast_log_repository.create(
                clinic_slug=forecast.clinic_slug,
                forecast_id=forecast.id,
                log_date=format_utc_date(now),
                forecast_type=ForecastType.UPGRADE.value,
                prediction={
                    'factors': forecast.factors,
                    'prediction_score': forecast.prediction_score,
                    'confidence': forecast.confidence,
                    'current_tier': forecast.current_tier,
                    'target_tier': forecast.target_tier,
                    'predicted_revenue': forecast.predicted_revenue,
                    'timeframe': forecast.timeframe_days,
                },
                model_version=FORECAST_MODEL_VERSION,
                created_at=now,
            )
            self.forecast_log_repository.commit()
            return log.id
        except SQLAlchemyError as e:
            self.forecast_log_repository.rollback()
            logger.warning(f"Failed to log forecast {forecast.id} for {forecast.clinic_slug}: {e}")
            return None
