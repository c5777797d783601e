# app.py

from flask import Flask, g, request, jsonify
from config import get_config
from extensions import db, migrate
import uuid
from sqlalchemy import text
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from logging_config import setup_logging, bind_request_id, get_logger
from services.exceptions import TrackingError, InternalError

logger = get_logger(__name__)


def init_sentry(app):
    """Initialize Sentry error tracking in production when a DSN is configured."""
    sentry_dsn = app.config.get('SENTRY_DSN')
    if not sentry_dsn or app.config.get('FLASK_ENV') != 'production':
        return

    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[
            FlaskIntegration(transaction_style='endpoint'),
            SqlalchemyIntegration()
        ],
        traces_sample_rate=app.config['SENTRY_TRACES_SAMPLE_RATE'],
        environment=app.config['FLASK_ENV']
    )
    logger.info("Sentry error tracking initialized")


def create_app(config_name=None, test_config=None):
    """
    Create and configure the tracking application.

    Args:
        config_name: 'development', 'testing' or 'production'; defaults to FLASK_ENV
        test_config: Mapping applied over the config class before validation
    """
    app = Flask(__name__)

    config_class = get_config(config_name)
    app.config.from_object(config_class)

    if test_config:
        app.config.update(test_config)

    setup_logging(app_name="survai-tracking", log_level=app.config['LOG_LEVEL'])

    config_class.init_app(app)
    config_class.validate_required_config(app)
    init_sentry(app)

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    db.init_app(app)
    migrate.init_app(app, db)

    registry = _build_registry(app)

    errors = registry.validate_dependencies()
    if errors:
        for error in errors:
            logger.error("Service dependency error", error=error)
        raise RuntimeError(f"Service dependency errors: {errors}")

    if app.debug:
        logger.debug("Service initialization order", order=registry.get_initialization_order())

    app.services = registry

    @app.before_request
    def before_request():
        g.request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())
        bind_request_id(g.request_id)
        logger.info("Request started")

    @app.after_request
    def after_request(response):
        response.headers['X-Request-ID'] = getattr(g, 'request_id', '')
        logger.info("Request completed", status_code=response.status_code)
        return response

    _register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        """Health check endpoint for monitoring"""
        health_status = {
            'status': 'healthy',
            'service': 'survai-tracking'
        }

        try:
            db.session.execute(text('SELECT 1'))
            health_status['database'] = 'connected'
        except Exception as e:
            health_status['database'] = 'error'
            health_status['status'] = 'degraded'
            logger.error("Health check database error", error=str(e))

        return jsonify(health_status), 200 if health_status['status'] == 'healthy' else 503

    # Register blueprints for routes
    from routes.tracking_routes import tracking_bp
    from routes.dashboard_routes import dashboard_bp
    from routes.question_routes import question_bp

    app.register_blueprint(tracking_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(question_bp)

    # Register CLI commands
    from scripts import commands
    commands.init_app(app)

    return app


def _register_error_handlers(app):
    from utils.api_response import api_error

    @app.errorhandler(TrackingError)
    def handle_tracking_error(error):
        if error.status_code >= 500:
            logger.error("Request failed",
                         code=error.code,
                         error=error.message)
        else:
            logger.warning("Request rejected",
                           code=error.code,
                           error=error.message)
        return api_error(error)

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        tracking_error = TrackingError(error.description or error.name, code=error.name.upper().replace(' ', '_'))
        tracking_error.status_code = error.code
        return api_error(tracking_error)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.error("Unhandled error",
                     error=str(error),
                     exc_info=True)
        db.session.rollback()
        return api_error(InternalError("An unexpected error occurred"))


def _build_registry(app):
    """Register repositories and services; nothing is built until first use."""
    from services.registry import ServiceRegistry
    from utils.clock import SystemClock

    registry = ServiceRegistry()

    registry.register('clock', SystemClock())
    registry.register_factory('db_session', lambda: db.session)

    # Repositories
    registry.register_factory(
        'click_repository',
        lambda db_session: _create_click_repository(db_session),
        dependencies=['db_session']
    )
    registry.register_factory(
        'offer_repository',
        lambda db_session: _create_offer_repository(db_session),
        dependencies=['db_session']
    )
    registry.register_factory(
        'question_repository',
        lambda db_session: _create_question_repository(db_session),
        dependencies=['db_session']
    )
    registry.register_factory(
        'survey_response_repository',
        lambda db_session: _create_survey_response_repository(db_session),
        dependencies=['db_session']
    )

    # Services
    registry.register_factory(
        'offer_eligibility',
        lambda question_repository: _create_offer_eligibility(question_repository),
        dependencies=['question_repository']
    )
    registry.register_factory(
        'epc',
        lambda click_repository, offer_repository, offer_eligibility, clock: _create_epc_service(
            click_repository, offer_repository, offer_eligibility, clock, app.config['EPC_WINDOW_DAYS']
        ),
        dependencies=['click_repository', 'offer_repository', 'offer_eligibility', 'clock']
    )
    registry.register_factory(
        'tracking',
        lambda click_repository, offer_repository, survey_response_repository, question_repository, clock: _create_tracking_service(
            click_repository, offer_repository, survey_response_repository, question_repository,
            clock, app.config['TRACKING_PIXEL_URL']
        ),
        dependencies=['click_repository', 'offer_repository', 'survey_response_repository',
                      'question_repository', 'clock']
    )
    registry.register_factory(
        'conversion',
        lambda click_repository, epc, clock: _create_conversion_service(click_repository, epc, clock),
        dependencies=['click_repository', 'epc', 'clock']
    )
    registry.register_factory(
        'question_ranker',
        lambda epc, question_repository: _create_question_ranker(epc, question_repository),
        dependencies=['epc', 'question_repository']
    )
    registry.register_factory(
        'dashboard',
        lambda clock: _create_dashboard_service(
            clock,
            app.config['DASHBOARD_SNAPSHOT_ISOLATION'],
            app.config['DASHBOARD_DEFAULT_TIME_RANGE']
        ),
        dependencies=['clock']
    )

    return registry


# Service Factory Functions
# These are only called when the service is first requested

def _create_click_repository(db_session):
    from repositories.click_repository import ClickRepository
    return ClickRepository(db_session)


def _create_offer_repository(db_session):
    from repositories.offer_repository import OfferRepository
    return OfferRepository(db_session)


def _create_question_repository(db_session):
    from repositories.question_repository import QuestionRepository
    return QuestionRepository(db_session)


def _create_survey_response_repository(db_session):
    from repositories.survey_response_repository import SurveyResponseRepository
    return SurveyResponseRepository(db_session)


def _create_offer_eligibility(question_repository):
    from services.offer_eligibility import QuestionOfferEligibility
    return QuestionOfferEligibility(question_repository)


def _create_epc_service(click_repository, offer_repository, offer_eligibility, clock, window_days):
    """Create EPCService with the ledger, the offer cache and the eligibility lookup"""
    from services.epc_service import EPCService
    logger.info("Initializing EPCService", window_days=window_days)
    return EPCService(
        click_repository=click_repository,
        offer_repository=offer_repository,
        eligibility_lookup=offer_eligibility,
        clock=clock,
        window_days=window_days
    )


def _create_tracking_service(click_repository, offer_repository, survey_response_repository,
                             question_repository, clock, pixel_base_url):
    from services.tracking_service import TrackingService
    logger.info("Initializing TrackingService")
    return TrackingService(
        click_repository=click_repository,
        offer_repository=offer_repository,
        response_repository=survey_response_repository,
        question_repository=question_repository,
        clock=clock,
        pixel_base_url=pixel_base_url
    )


def _create_conversion_service(click_repository, epc, clock):
    from services.conversion_service import ConversionService
    logger.info("Initializing ConversionService")
    return ConversionService(click_repository=click_repository, epc_service=epc, clock=clock)


def _create_question_ranker(epc, question_repository):
    from services.question_ranker import QuestionRanker
    return QuestionRanker(epc_service=epc, question_repository=question_repository)


def _create_dashboard_service(clock, isolation_level, default_time_range):
    """Create DashboardService reading through a snapshot session"""
    from services.dashboard_service import DashboardService, snapshot_session_scope
    logger.info("Initializing DashboardService", isolation_level=isolation_level)
    return DashboardService(
        session_scope=snapshot_session_scope(db, isolation_level),
        clock=clock,
        default_time_range=default_time_range
    )
