"""
Structured logging for the growth service.

The app factory, Celery tasks and the performance logger emit JSON events
through structlog. Services and repositories keep using stdlib loggers,
which share the same level and stdout stream.
"""

import logging
import sys
import time
from contextlib import contextmanager

import structlog
from flask import g, has_request_context, request

QUIET_LOGGERS = ('werkzeug', 'sqlalchemy.engine', 'celery.redirected')


def bind_request(logger, method_name, event_dict):
    if has_request_context():
        event_dict.setdefault('request_id', getattr(g, 'request_id', None))
        event_dict.setdefault('path', request.path)
        event_dict.setdefault('method', request.method)
    return event_dict


def setup_logging(app_name: str = "clinic-growth", log_level: str = "INFO") -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            bind_request,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(app=app_name)

    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stdout,
        level=level,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = None):
    return structlog.get_logger(name or __name__)


class PerformanceLogger:
    """Durations of report and forecast computations"""

    def __init__(self):
        self.logger = get_logger("performance")

    def log_computation(self, name: str, duration_ms: float, **details):
        self.logger.info(
            "Computation finished",
            computation=name,
            duration_ms=round(duration_ms, 2),
            event_type="computation",
            **details
        )

    @contextmanager
    def timed(self, name: str, **details):
        """Log the wrapped block's duration when it completes without raising"""
        started = time.perf_counter()
        yield details
        self.log_computation(name, (time.perf_counter() - started) * 1000, **details)


performance_logger = PerformanceLogger()
