import os
from dotenv import load_dotenv

load_dotenv()


def normalize_database_url(url):
    """Normalize Postgres URLs to the psycopg2 driver; other URLs pass through."""
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql+psycopg2://', 1)
    elif url.startswith('postgresql://') and '+psycopg2' not in url:
        return url.replace('postgresql://', 'postgresql+psycopg2://', 1)
    return url


class Config:
    # Database
    _db_url = os.getenv('DATABASE_URL', 'sqlite:///flowbuilder.db')
    SQLALCHEMY_DATABASE_URI = normalize_database_url(_db_url)
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # create_all on startup instead of migrations
    AUTO_CREATE_TABLES = False

    # Security
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Fernet key for connector credentials; derived from SECRET_KEY when unset
    CREDENTIALS_ENCRYPTION_KEY = os.getenv('CREDENTIALS_ENCRYPTION_KEY', '')

    # Flask
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')
    DEBUG = os.getenv('FLASK_ENV') == 'development'

    # CORS (comma separated)
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', '')

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Flow engine
    FLOW_HTTP_TIMEOUT_SECONDS = float(os.getenv('FLOW_HTTP_TIMEOUT_SECONDS', '30'))
    FLOW_DEFAULT_MAX_ITERATIONS = int(os.getenv('FLOW_DEFAULT_MAX_ITERATIONS', '1000'))
    FLOW_MAX_ITERATIONS_CAP = int(os.getenv('FLOW_MAX_ITERATIONS_CAP', '10000'))
    FLOW_MAX_DELAY_SECONDS = float(os.getenv('FLOW_MAX_DELAY_SECONDS', '86400'))
    FLOW_EXPRESSION_MAX_STEPS = int(os.getenv('FLOW_EXPRESSION_MAX_STEPS', '10000'))
    FLOW_EXPRESSION_TIMEOUT_MS = int(os.getenv('FLOW_EXPRESSION_TIMEOUT_MS', '250'))


class TestingConfig(Config):
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    AUTO_CREATE_TABLES = True
    FLOW_MAX_DELAY_SECONDS = 5.0
