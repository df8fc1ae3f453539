# app.py

from flask import Flask, g, request, jsonify
from flask_migrate import Migrate
from config import get_config
from extensions import db
import os
import uuid
from werkzeug.middleware.proxy_fix import ProxyFix
from logging_config import setup_logging, get_logger

# Configure logging as early as possible
setup_logging(app_name="clinic-growth", log_level=os.environ.get('LOG_LEVEL', 'INFO'))
logger = get_logger(__name__)


def init_sentry():
    """Initialize Sentry error tracking in production."""
    sentry_dsn = os.environ.get('SENTRY_DSN')
    if sentry_dsn and os.environ.get('FLASK_ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
        from sentry_sdk.integrations.celery import CeleryIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[
                FlaskIntegration(transaction_style='endpoint'),
                SqlalchemyIntegration(),
                CeleryIntegration()
            ],
            traces_sample_rate=0.1,
            environment=os.environ.get('FLASK_ENV', 'development'),
            release=os.environ.get('GIT_SHA', 'unknown')
        )
        logger.info("Sentry error tracking initialized")


init_sentry()


def create_app(config_name=None, test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__)

    config_class = get_config(config_name)
    app.config.from_object(config_class)
    config_class.init_app(app)

    if test_config:
        app.config.update(test_config)

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    db.init_app(app)
    import clinic_database  # noqa: F401
    Migrate(app, db)

    app.services = _build_registry(app.config)

    @app.before_request
    def before_request():
        g.request_id = str(uuid.uuid4())
        logger.info("Request started",
                    request_id=g.request_id,
                    method=request.method,
                    path=request.path)

    @app.after_request
    def after_request(response):
        logger.info("Request completed",
                    request_id=getattr(g, 'request_id', None),
                    status_code=response.status_code)
        return response

    _register_error_handlers(app)

    @app.route('/health')
    def health_check():
        """Health check endpoint for monitoring"""
        from sqlalchemy import text
        health_status = {
            'status': 'healthy',
            'service': 'clinic-growth'
        }

        try:
            db.session.execute(text('SELECT 1'))
            health_status['database'] = 'connected'
        except Exception as e:
            health_status['database'] = 'error'
            health_status['status'] = 'degraded'
            logger.error(f"Health check database error: {e}")

        return jsonify(health_status), 200 if health_status['status'] == 'healthy' else 503

    from routes.tracking_api import tracking_bp
    from routes.analytics_api import analytics_bp

    app.register_blueprint(tracking_bp, url_prefix='/api/track')
    app.register_blueprint(analytics_bp, url_prefix='/api/analytics')

    from scripts import commands
    commands.init_app(app)

    return app


def _build_registry(config):
    """Wire repositories and services; everything resolves lazily on first use"""
    from services.service_registry import create_service_registry

    registry = create_service_registry()

    # db.session is a scoped session proxy, so singletons holding it stay request-safe
    registry.register('db_session', service=db.session)

    repositories = {
        'clinic_repository': _create_clinic_repository,
        'clinic_contact_repository': _create_clinic_contact_repository,
        'visitor_session_repository': _create_visitor_session_repository,
        'variant_test_repository': _create_variant_test_repository,
        'variant_assignment_repository': _create_variant_assignment_repository,
        'conversion_event_repository': _create_conversion_event_repository,
        'upgrade_forecast_repository': _create_upgrade_forecast_repository,
        'forecast_log_repository': _create_forecast_log_repository,
    }
    for name, factory in repositories.items():
        registry.register_singleton(name, factory, dependencies=['db_session'])

    registry.register_singleton(
        'assignment_store',
        lambda variant_assignment_repository: _create_assignment_store(variant_assignment_repository, config),
        dependencies=['variant_assignment_repository']
    )
    registry.register_singleton(
        'variant_assignment',
        _create_variant_assignment_service,
        dependencies=['variant_test_repository', 'assignment_store']
    )
    registry.register_singleton(
        'variant_test',
        _create_variant_test_service,
        dependencies=['variant_test_repository', 'clinic_repository']
    )
    registry.register_singleton(
        'conversion_tracking',
        _create_conversion_tracking_service,
        dependencies=['conversion_event_repository', 'clinic_repository',
                      'variant_test_repository', 'visitor_session_repository']
    )
    registry.register_singleton(
        'session_tracking',
        _create_session_tracking_service,
        dependencies=['visitor_session_repository']
    )
    registry.register_singleton(
        'conversion_rate',
        _create_conversion_rate_service,
        dependencies=['conversion_event_repository', 'clinic_repository']
    )
    registry.register_singleton(
        'upgrade_forecast',
        lambda **deps: _create_upgrade_forecast_service(config, **deps),
        dependencies=['clinic_repository', 'clinic_contact_repository', 'visitor_session_repository',
                      'conversion_event_repository', 'conversion_rate',
                      'upgrade_forecast_repository', 'forecast_log_repository']
    )

    missing = registry.validate_dependencies()
    if missing:
        raise RuntimeError("; ".join(missing))
    return registry


def _register_error_handlers(app):
    from services.common.errors import GrowthServiceError

    @app.errorhandler(GrowthServiceError)
    def service_error(error):
        log = logger.error if error.status_code >= 500 else logger.warning
        log("Service error",
            request_id=getattr(g, 'request_id', None),
            error_type=type(error).__name__,
            error=str(error))
        return jsonify({'error': str(error)}), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        logger.warning("Page not found",
                       request_id=getattr(g, 'request_id', None),
                       path=request.path)
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        logger.error("Internal server error",
                     request_id=getattr(g, 'request_id', None),
                     error=str(error))
        return jsonify({'error': 'Internal server error'}), 500


# Factory functions for the registry

def _create_clinic_repository(db_session):
    from repositories.clinic_repository import ClinicRepository
    return ClinicRepository(session=db_session)


def _create_clinic_contact_repository(db_session):
    from repositories.clinic_repository import ClinicContactRepository
    return ClinicContactRepository(session=db_session)


def _create_visitor_session_repository(db_session):
    from repositories.visitor_session_repository import VisitorSessionRepository
    return VisitorSessionRepository(session=db_session)


def _create_variant_test_repository(db_session):
    from repositories.variant_test_repository import VariantTestRepository
    return VariantTestRepository(session=db_session)


def _create_variant_assignment_repository(db_session):
    from repositories.variant_assignment_repository import VariantAssignmentRepository
    return VariantAssignmentRepository(session=db_session)


def _create_conversion_event_repository(db_session):
    from repositories.conversion_event_repository import ConversionEventRepository
    return ConversionEventRepository(session=db_session)


def _create_upgrade_forecast_repository(db_session):
    from repositories.forecast_repository import UpgradeForecastRepository
    return UpgradeForecastRepository(session=db_session)


def _create_forecast_log_repository(db_session):
    from repositories.forecast_repository import ForecastLogRepository
    return ForecastLogRepository(session=db_session)


def _create_assignment_store(variant_assignment_repository, config):
    """Cached read-through store in front of the database unless disabled"""
    if not config.get('ASSIGNMENT_CACHE_ENABLED', True):
        return variant_assignment_repository
    from services.assignment_store import CachedAssignmentStore
    return CachedAssignmentStore(variant_assignment_repository, ttl=config.get('ASSIGNMENT_CACHE_TTL', 3600))


def _create_variant_assignment_service(variant_test_repository, assignment_store):
    from services.variant_assignment_service import VariantAssignmentService
    return VariantAssignmentService(variant_test_repository, assignment_store)


def _create_variant_test_service(variant_test_repository, clinic_repository):
    from services.variant_test_service import VariantTestService
    return VariantTestService(variant_test_repository, clinic_repository)


def _create_conversion_tracking_service(conversion_event_repository, clinic_repository,
                                        variant_test_repository, visitor_session_repository):
    from services.conversion_tracking_service import ConversionTrackingService
    return ConversionTrackingService(
        conversion_event_repository=conversion_event_repository,
        clinic_repository=clinic_repository,
        variant_test_repository=variant_test_repository,
        visitor_session_repository=visitor_session_repository,
    )


def _create_session_tracking_service(visitor_session_repository):
    from services.session_tracking_service import SessionTrackingService
    return SessionTrackingService(visitor_session_repository)


def _create_conversion_rate_service(conversion_event_repository, clinic_repository):
    from services.conversion_rate_service import ConversionRateService
    return ConversionRateService(conversion_event_repository, clinic_repository)


def _create_upgrade_forecast_service(config, clinic_repository, clinic_contact_repository,
                                     visitor_session_repository, conversion_event_repository,
                                     conversion_rate, upgrade_forecast_repository, forecast_log_repository):
    from services.upgrade_forecast_service import UpgradeForecastService
    return UpgradeForecastService(
        clinic_repository=clinic_repository,
        clinic_contact_repository=clinic_contact_repository,
        visitor_session_repository=visitor_session_repository,
        conversion_event_repository=conversion_event_repository,
        conversion_rate_service=conversion_rate,
        upgrade_forecast_repository=upgrade_forecast_repository,
        forecast_log_repository=forecast_log_repository,
        ttl_days=config.get('FORECAST_TTL_DAYS', 7),
    )


if __name__ == '__main__':
    app = create_app()
    app.run(debug=True)
