# Event Pass Configuration

import os
from pathlib import Path

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Base directory
BASE_DIR = Path(__file__).parent.absolute()


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ['true', 'on', '1']


class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'eventpass-secret-key-change-me'
    SYSTEM_NAME = 'KMIT Clubs'

    # Database Configuration
    DATABASE_PATH = Path(os.environ.get('DATABASE_PATH') or BASE_DIR / 'database' / 'eventpass.db')
    DATABASE_TIMEOUT = 30.0  # seconds a writer waits on a locked database

    # Credential / QR Code Configuration
    CREDENTIAL_TOKEN_BYTES = 32
    QR_CODE_BOX_SIZE = 10
    QR_CODE_BORDER = 4

    # Email Configuration
    MAIL_SERVER = os.environ.get('MAIL_SERVER') or 'localhost'
    MAIL_PORT = int(os.environ.get('MAIL_PORT') or 587)
    MAIL_USE_TLS = _env_flag('MAIL_USE_TLS', 'true')
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER') or 'KMIT Clubs <noreply@kmitclubs.in>'
    MAIL_TIMEOUT = 30  # seconds
    MAIL_SUPPRESS_SEND = False

    # Notification Configuration
    NOTIFICATION_MAX_RETRIES = int(os.environ.get('NOTIFICATION_MAX_RETRIES') or 2)
    NOTIFICATION_RETRY_DELAY = float(os.environ.get('NOTIFICATION_RETRY_DELAY') or 1.0)
    NOTIFICATION_THROTTLE_DELAY = float(os.environ.get('NOTIFICATION_THROTTLE_DELAY') or 2.0)

    # Members in this cohort no longer receive club announcements
    GRADUATED_COHORT = 'Pass Out'

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = BASE_DIR / 'logs' / 'eventpass.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    DEBUG = _env_flag('DEBUG')
    TESTING = False

    @classmethod
    def init_app(cls, app):
        """Initialize application configuration"""
        if str(cls.DATABASE_PATH) != ':memory:':
            Path(cls.DATABASE_PATH).parent.mkdir(parents=True, exist_ok=True)

        app.config.update({
            key: getattr(cls, key) for key in dir(cls) if key.isupper()
        })


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    DATABASE_PATH = BASE_DIR / 'database' / 'eventpass_dev.db'
    LOG_LEVEL = 'DEBUG'

    # MailHog default port
    MAIL_SERVER = 'localhost'
    MAIL_PORT = 1025
    MAIL_USE_TLS = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True

    MAIL_SUPPRESS_SEND = True

    # No waiting between attempts or recipients under test
    NOTIFICATION_RETRY_DELAY = 0.0
    NOTIFICATION_THROTTLE_DELAY = 0.0


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    DATABASE_PATH = Path(os.environ.get('DATABASE_PATH') or BASE_DIR / 'database' / 'eventpass_prod.db')
    LOG_LEVEL = 'WARNING'

    @classmethod
    def init_app(cls, app):
        super().init_app(app)

        import logging
        from logging.handlers import RotatingFileHandler

        if not app.debug:
            cls.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                cls.LOG_FILE,
                maxBytes=cls.LOG_MAX_BYTES,
                backupCount=cls.LOG_BACKUP_COUNT
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)

            app.logger.setLevel(logging.INFO)
            app.logger.info('Event pass service startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration class based on name or the FLASK_ENV variable"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')
    return config.get(config_name, DevelopmentConfig)


def validate_config(settings):
    """
    Validate configuration settings, returning a list of error messages.

    Args:
        settings: Config class or the Flask ``app.config`` mapping
    """
    if not isinstance(settings, dict):
        settings = {key: getattr(settings, key) for key in dir(settings) if key.isupper()}

    errors = []

    # 16 bytes is the floor for an unguessable check-in credential
    if settings['CREDENTIAL_TOKEN_BYTES'] < 16:
        errors.append("CREDENTIAL_TOKEN_BYTES must be at least 16 (128 bits)")

    if settings['NOTIFICATION_MAX_RETRIES'] < 0:
        errors.append("NOTIFICATION_MAX_RETRIES cannot be negative")

    if settings['NOTIFICATION_RETRY_DELAY'] < 0 or settings['NOTIFICATION_THROTTLE_DELAY'] < 0:
        errors.append("Notification delays cannot be negative")

    if not settings['MAIL_SUPPRESS_SEND'] and not settings['MAIL_SERVER']:
        errors.append("MAIL_SERVER is required when email sending is enabled")

    if str(settings['LOG_LEVEL']).upper() not in LOG_LEVELS:
        errors.append(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

    return errors
