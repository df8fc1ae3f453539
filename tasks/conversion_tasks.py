"""
Celery tasks for conversion counter maintenance
"""

from flask import current_app

from celery_worker import celery
from logging_config import get_logger
from services.common.errors import StorageError

logger = get_logger(__name__)


@celery.task
def rebuild_all_conversion_counters():
    """
    Recompute every clinic's conversion counters from its stored events,
    repairing drift left by failed counter updates.
    """
    clinic_repository = current_app.services.get('clinic_repository')
    tracking_service = current_app.services.get('conversion_tracking')

    rebuilt, failed = 0, []
    for slug in clinic_repository.list_slugs():
        try:
            tracking_service.rebuild_conversion_counters(slug)
            rebuilt += 1
        except StorageError as e:
            failed.append(slug)
            logger.error("Counter rebuild failed", clinic_slug=slug, error=str(e))

    logger.info("Counter rebuild completed", rebuilt=rebuilt, failed=len(failed))
    return {'rebuilt': rebuilt, 'failed': failed}
