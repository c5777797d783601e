import os
import secrets
from dotenv import load_dotenv
from typing import Optional

basedir = os.path.abspath(os.path.dirname(__file__))

# .env next to this file, if present; real environment variables win
load_dotenv(os.path.join(basedir, '.env'))

VALID_TIME_RANGES = ('last24h', 'last7d', 'last30d')


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid"""
    pass


def _int_env(key: str, default: int) -> int:
    raw = os.environ.get(key)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be an integer, got {raw!r}")


class Config:
    """Settings shared by every environment, read from the process environment"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)
    FLASK_ENV = os.environ.get('FLASK_ENV')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    @staticmethod
    def get_required_env(key: str) -> str:
        """
        Read a variable that has no sensible default.

        Raises:
            ConfigurationError: If the variable is unset or empty
        """
        value = os.environ.get(key)
        if not value:
            raise ConfigurationError(f"Required environment variable {key} is not set")
        return value

    # Ledger database; SQLite only for local runs
    SQLALCHEMY_DATABASE_URI = os.environ.get('POSTGRES_URI') or \
        os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'survai_tracking.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Tracking
    TRACKING_PIXEL_URL = os.environ.get('TRACKING_PIXEL_URL', 'https://tracking.survai.app/pixel')
    EPC_WINDOW_DAYS = _int_env('EPC_WINDOW_DAYS', 7)

    # Dashboard
    DASHBOARD_DEFAULT_TIME_RANGE = os.environ.get('DASHBOARD_DEFAULT_TIME_RANGE', 'last7d')
    # Isolation level of the dashboard snapshot transaction; ignored on SQLite
    DASHBOARD_SNAPSHOT_ISOLATION = os.environ.get('DASHBOARD_SNAPSHOT_ISOLATION', 'REPEATABLE READ')

    # Error tracking, only enabled in production when a DSN is set
    SENTRY_DSN = os.environ.get('SENTRY_DSN')
    SENTRY_TRACES_SAMPLE_RATE = float(os.environ.get('SENTRY_TRACES_SAMPLE_RATE', '0.1'))

    # Request bodies are small JSON documents
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024

    @classmethod
    def validate_required_config(cls, app) -> None:
        """Validate tracking settings loaded into the app"""
        if app.config.get('EPC_WINDOW_DAYS', 0) < 1:
            raise ConfigurationError("EPC_WINDOW_DAYS must be at least 1")

        if app.config.get('DASHBOARD_DEFAULT_TIME_RANGE') not in VALID_TIME_RANGES:
            raise ConfigurationError(
                f"DASHBOARD_DEFAULT_TIME_RANGE must be one of: {', '.join(VALID_TIME_RANGES)}"
            )

        if not app.config.get('TRACKING_PIXEL_URL'):
            raise ConfigurationError("TRACKING_PIXEL_URL must not be empty")

    @classmethod
    def init_app(cls, app):
        """Hook for environment-specific setup"""
        pass


class DevelopmentConfig(Config):
    """Development environment configuration"""
    FLASK_ENV = 'development'
    DEBUG = True
    TESTING = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')

    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or \
        Config.SQLALCHEMY_DATABASE_URI


class TestingConfig(Config):
    """Testing environment configuration"""
    FLASK_ENV = 'testing'
    TESTING = True
    DEBUG = True
    LOG_LEVEL = 'WARNING'

    # One in-memory database per app; tables created by the fixtures
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {
        'connect_args': {'check_same_thread': False}
    }

    TRACKING_PIXEL_URL = 'https://tracking.test/pixel'
    SENTRY_DSN = None
    EPC_WINDOW_DAYS = 7
    DASHBOARD_DEFAULT_TIME_RANGE = 'last7d'


class ProductionConfig(Config):
    """Production environment configuration"""
    FLASK_ENV = 'production'
    DEBUG = False
    TESTING = False

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', '')
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300
    }

    @classmethod
    def init_app(cls, app):
        """Require a real database and an https pixel endpoint"""
        if not app.config.get('SQLALCHEMY_DATABASE_URI'):
            app.config['SQLALCHEMY_DATABASE_URI'] = cls.get_required_env('POSTGRES_URI')

        if not app.config['TRACKING_PIXEL_URL'].startswith('https://'):
            raise ConfigurationError("TRACKING_PIXEL_URL must use https in production")


config_by_name = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: Optional[str] = None) -> type[Config]:
    """Get configuration class based on environment"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    return config_by_name.get(config_name, DevelopmentConfig)
