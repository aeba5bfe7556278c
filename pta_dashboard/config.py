"""
Configuration classes for the PTA Dashboard
"""
import os
import re

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_SECRET_KEY = 'dev-secret-change-me'
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class ConfigurationError(Exception):
    """Raised at startup when required settings are missing or invalid."""


def _database_url():
    database_url = os.environ.get('DATABASE_URL')
    if database_url and database_url.startswith("postgres://"):
        # SQLAlchemy only accepts the postgresql:// scheme
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def _split_types(value):
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    # Flask
    SECRET_KEY = os.environ.get('SECRET_KEY', DEFAULT_SECRET_KEY)
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Security
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = 3600  # 1 hour

    # Session claims
    JWT_ALGORITHM = 'HS256'
    SESSION_TOKEN_MINUTES = int(os.environ.get('SESSION_TOKEN_MINUTES', 60))

    # Database
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # School
    SCHOOL_NAME = os.environ.get('SCHOOL_NAME', 'Vel Elementary School')
    SCHOOL_YEAR = os.environ.get('SCHOOL_YEAR', '2024-2025')
    PTA_CONTRIBUTION_AMOUNT = os.environ.get('PTA_CONTRIBUTION_AMOUNT', '250')
    STUDENT_ID_PREFIX = os.environ.get('STUDENT_ID_PREFIX', 'VEL')

    # Uploads
    MAX_FILE_SIZE = os.environ.get('MAX_FILE_SIZE', str(5 * 1024 * 1024))  # 5MB
    ALLOWED_FILE_TYPES = _split_types(os.environ.get(
        'ALLOWED_FILE_TYPES', 'image/jpeg,image/png,image/jpg,application/pdf'
    ))
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER')

    # Bootstrap admin
    ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL')
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD')

    # Backend retry policy
    RETRY_MAX_RETRIES = int(os.environ.get('RETRY_MAX_RETRIES', 3))
    RETRY_DELAY = float(os.environ.get('RETRY_DELAY', 1.0))
    RETRY_BACKOFF = float(os.environ.get('RETRY_BACKOFF', 2))

    @staticmethod
    def init_app(app):
        if not app.config.get('SQLALCHEMY_DATABASE_URI'):
            # Use SQLite for local development, placing the DB in the 'instance' folder
            app.config['SQLALCHEMY_DATABASE_URI'] = (
                f"sqlite:///{os.path.join(app.instance_path, 'pta_dashboard.db')}"
            )
        if not app.config.get('UPLOAD_FOLDER'):
            app.config['UPLOAD_FOLDER'] = os.path.join(app.instance_path, 'uploads')


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    # Flask
    DEBUG = False
    TESTING = False
    PREFERRED_URL_SCHEME = 'https'

    # Security
    SESSION_COOKIE_SECURE = True

    # Database
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 10,
        'pool_timeout': 30,
        'pool_recycle': 1800,  # Recycle connections after 30 minutes
        'max_overflow': 2,
        'pool_pre_ping': True,
    }

    REQUIRED_KEYS = ('SECRET_KEY', 'SQLALCHEMY_DATABASE_URI')

    @staticmethod
    def init_app(app):
        Config.init_app(app)
        app.config['PREFERRED_URL_SCHEME'] = 'https'


class TestingConfig(Config):
    TESTING = True
    LOG_LEVEL = 'WARNING'
    SECRET_KEY = 'testing-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    WTF_CSRF_ENABLED = False
    RETRY_DELAY = 0
    ADMIN_EMAIL = None
    ADMIN_PASSWORD = None


CONFIGS = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
}


def get_config(name=None):
    name = name or os.environ.get('FLASK_CONFIG', 'development')
    try:
        return CONFIGS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown configuration '{name}'")


def _positive_number(value):
    try:
        return float(value) > 0
    except (TypeError, ValueError):
        return False


def validate_config(config):
    """Check settings and raise ConfigurationError listing every problem."""
    errors = []

    required = config.get('REQUIRED_KEYS', ())
    for key in required:
        if not config.get(key):
            errors.append(f"{key}: is required")
    if 'SECRET_KEY' in required and config.get('SECRET_KEY') == DEFAULT_SECRET_KEY:
        errors.append("SECRET_KEY: the development default cannot be used here")

    if not config.get('SECRET_KEY'):
        errors.append("SECRET_KEY: is required")
    if not _positive_number(config.get('PTA_CONTRIBUTION_AMOUNT')):
        errors.append("PTA_CONTRIBUTION_AMOUNT: must be a positive number")
    if not _positive_number(config.get('MAX_FILE_SIZE')):
        errors.append("MAX_FILE_SIZE: must be a positive number")

    admin_email = config.get('ADMIN_EMAIL')
    if admin_email and not EMAIL_PATTERN.match(admin_email):
        errors.append("ADMIN_EMAIL: Invalid admin email")
    admin_password = config.get('ADMIN_PASSWORD')
    if admin_password is not None and len(admin_password) < 8:
        errors.append("ADMIN_PASSWORD: Admin password must be at least 8 characters")

    if errors:
        raise ConfigurationError(
            "Environment validation failed:\n" + "\n".join(errors)
        )

    config['PTA_CONTRIBUTION_AMOUNT'] = str(config['PTA_CONTRIBUTION_AMOUNT'])
    config['MAX_FILE_SIZE'] = int(float(config['MAX_FILE_SIZE']))


def check_config(config):
    """Runtime checks shown on the settings page."""
    checks = [
        ('Database URL', config.get('SQLALCHEMY_DATABASE_URI'),
         lambda val: bool(val)),
        ('Secret key', config.get('SECRET_KEY'),
         lambda val: bool(val) and val != DEFAULT_SECRET_KEY),
        ('Upload folder', config.get('UPLOAD_FOLDER'),
         lambda val: bool(val)),
    ]
    return [
        {
            'name': name,
            'passed': test(value),
            'value': '✓ Set' if value else '✗ Missing',
        }
        for name, value, test in checks
    ]
