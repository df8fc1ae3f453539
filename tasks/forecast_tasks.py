"""
Celery tasks for upgrade forecasts
"""

from flask import current_app

from celery_worker import celery
from logging_config import get_logger
from services.common.errors import StorageError
from utils.datetime_utils import utc_now

logger = get_logger(__name__)


@celery.task(bind=True, max_retries=3)
def refresh_stale_forecasts(self):
    """
    Regenerate forecasts for every clinic whose latest forecast has expired.
    Per-clinic failures are counted in the summary; a storage outage retries
    the whole run with exponential backoff.
    """
    forecast_service = current_app.services.get('upgrade_forecast')
    try:
        summary = forecast_service.refresh_stale_forecasts()
    except StorageError as e:
        logger.error("Forecast refresh failed", error=str(e), retries=self.request.retries)
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))

    logger.info("Forecast refresh completed", **summary)
    return {**summary, 'timestamp': utc_now().isoformat()}


@celery.task
def generate_forecast(clinic_slug: str):
    """Generate a fresh forecast for one clinic"""
    forecast = current_app.services.get('upgrade_forecast').generate_forecast(clinic_slug)
    logger.info("Forecast generated", clinic_slug=clinic_slug,
                prediction_score=forecast['prediction_score'])
    return forecast
