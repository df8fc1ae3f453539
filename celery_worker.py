# celery_worker.py
from celery.schedules import crontab

from app import create_app
from celery_config import create_celery_app
from logging_config import get_logger

logger = get_logger(__name__)

celery = create_celery_app(__name__)

# Tasks resolve services through this app's registry
flask_app = create_app()


class ContextTask(celery.Task):
    def __call__(self, *args, **kwargs):
        with flask_app.app_context():
            return self.run(*args, **kwargs)


celery.Task = ContextTask

celery.conf.beat_schedule = {
    'refresh-stale-forecasts': {
        'task': 'tasks.forecast_tasks.refresh_stale_forecasts',
        # Daily at 3 AM UTC
        'schedule': crontab(hour=3, minute=0),
    },
    'rebuild-conversion-counters': {
        'task': 'tasks.conversion_tasks.rebuild_all_conversion_counters',
        # Weekly on Sunday at 4 AM UTC
        'schedule': crontab(hour=4, minute=0, day_of_week=0),
    },
}
celery.conf.timezone = 'UTC'

# Imported after the Flask app exists so task modules can register
with flask_app.app_context():
    import tasks.forecast_tasks  # noqa: F401
    import tasks.conversion_tasks  # noqa: F401
    logger.info("Celery tasks registered", tasks=sorted(t for t in celery.tasks if t.startswith('tasks.')))
