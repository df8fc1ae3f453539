"""
Celery app construction shared by the worker, beat and the Flask side that
enqueues jobs.
"""
import os
import ssl

from celery import Celery

from config import with_redis_ssl_opt
from logging_config import get_logger

logger = get_logger(__name__)

# Managed redis presents certificates we do not pin
_TLS = {
    'ssl_cert_reqs': ssl.CERT_NONE,
    'ssl_ca_certs': None,
    'ssl_certfile': None,
    'ssl_keyfile': None,
}


def celery_settings(broker_url, backend_url):
    """Keyword settings for Celery(); TLS options only for rediss:// URLs"""
    broker_tls = broker_url.startswith('rediss://')
    backend_tls = backend_url.startswith('rediss://')
    settings = {
        'broker': with_redis_ssl_opt(broker_url),
        'backend': with_redis_ssl_opt(backend_url),
    }
    if broker_tls or backend_tls:
        settings.update(
            broker_use_ssl=_TLS if broker_tls else None,
            redis_backend_use_ssl=_TLS if backend_tls else None,
            broker_connection_retry_on_startup=True,
            broker_connection_max_retries=3,
            broker_transport_options={'socket_connect_timeout': 30, 'socket_timeout': 30},
        )
    return settings


def create_celery_app(app_name=__name__):
    broker_url = os.environ.get('CELERY_BROKER_URL') or os.environ.get('REDIS_URL') or 'redis://redis:6379/0'
    backend_url = os.environ.get('CELERY_RESULT_BACKEND') or broker_url

    settings = celery_settings(broker_url, backend_url)
    celery = Celery(app_name, **settings)
    logger.info("Celery configured", tls='broker_use_ssl' in settings)
    return celery
