import os
import secrets
from dotenv import load_dotenv
from typing import Optional

basedir = os.path.abspath(os.path.dirname(__file__))

# Local overrides live in a .env next to this file
load_dotenv(os.path.join(basedir, '.env'))


class ConfigurationError(Exception):
    """A setting is missing or cannot be parsed"""
    pass


def _int_env(key: str, default: int) -> int:
    """Integer setting from the environment; an empty string counts as unset"""
    raw = os.environ.get(key)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be an integer, got {raw!r}")


def _flag_env(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def with_redis_ssl_opt(url: str) -> str:
    """Managed redis (rediss://) needs an explicit cert policy for kombu"""
    if url.startswith('rediss://') and 'ssl_cert_reqs' not in url:
        return url + ('&' if '?' in url else '?') + 'ssl_cert_reqs=CERT_NONE'
    return url


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    SQLALCHEMY_DATABASE_URI = (os.environ.get('DATABASE_URL')
                               or 'sqlite:///' + os.path.join(basedir, 'clinic_growth.db'))
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    REDIS_URL = os.environ.get('REDIS_URL') or 'redis://redis:6379/0'
    CELERY_BROKER_URL = REDIS_URL
    CELERY_RESULT_BACKEND = REDIS_URL

    # Days a stored upgrade forecast stays fresh
    FORECAST_TTL_DAYS = _int_env('FORECAST_TTL_DAYS', 7)
    # Seconds a (session, test) assignment is held in the in-process cache
    ASSIGNMENT_CACHE_TTL = _int_env('ASSIGNMENT_CACHE_TTL', 3600)
    ASSIGNMENT_CACHE_ENABLED = _flag_env('ASSIGNMENT_CACHE_ENABLED', True)
    # Default window for conversion reports when no range is given
    CONVERSION_REPORT_DAYS = _int_env('CONVERSION_REPORT_DAYS', 30)

    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # tracking payloads are small

    @classmethod
    def validate(cls) -> None:
        """Reject growth settings that would break scoring or reporting"""
        for name in ('FORECAST_TTL_DAYS', 'ASSIGNMENT_CACHE_TTL', 'CONVERSION_REPORT_DAYS'):
            if getattr(cls, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if not cls.SQLALCHEMY_DATABASE_URI:
            raise ConfigurationError("DATABASE_URL is not set")

    @classmethod
    def init_app(cls, app):
        cls.validate()


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class TestingConfig(Config):
    TESTING = True
    DEBUG = True

    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    CELERY_BROKER_URL = 'redis://localhost:6379/1'
    CELERY_RESULT_BACKEND = 'redis://localhost:6379/1'

    # Assignment reads go straight to the repository
    ASSIGNMENT_CACHE_ENABLED = False
    FORECAST_TTL_DAYS = 7
    CONVERSION_REPORT_DAYS = 30


class ProductionConfig(Config):
    DEBUG = False

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', '')
    CELERY_BROKER_URL = with_redis_ssl_opt(os.environ.get('REDIS_URL', ''))
    CELERY_RESULT_BACKEND = CELERY_BROKER_URL

    @classmethod
    def init_app(cls, app):
        super().init_app(app)
        if not cls.CELERY_BROKER_URL:
            raise ConfigurationError("REDIS_URL is not set")

        import logging
        from logging.handlers import SysLogHandler
        syslog_handler = SysLogHandler()
        syslog_handler.setLevel(logging.WARNING)
        app.logger.addHandler(syslog_handler)


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: Optional[str] = None) -> type[Config]:
    """Config class for the named environment (FLASK_ENV when omitted)"""
    name = config_name or os.environ.get('FLASK_ENV', 'development')
    return config.get(name, DevelopmentConfig)
