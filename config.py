"""
Health-Lock Service Configuration
Record sharing, consent requests and access auditing
"""
import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()


def _split_origins(value):
    return [origin.strip().rstrip('/') for origin in value.split(',') if origin.strip()]


class Config:
    """Base Configuration"""
    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    MAX_CONTENT_LENGTH = 50 * 1024 * 1024

    # JWT Configuration (session and record access tokens share the key)
    # No fallback; create_app refuses to start without it
    JWT_SECRET_KEY = os.getenv('JWT_SECRET')
    JWT_ALGORITHM = 'HS256'
    SESSION_TOKEN_EXPIRES = timedelta(days=30)
    RECORD_TOKEN_EXPIRES = timedelta(minutes=10)

    # Session cookie
    AUTH_COOKIE_NAME = 'auth_token'
    AUTH_COOKIE_SECURE = False
    AUTH_COOKIE_SAMESITE = 'Lax'
    REMEMBER_ME_MAX_AGE = timedelta(days=30)

    # Consent workflow
    PROFILE_ACCESS_REQUEST_TTL = timedelta(minutes=10)

    # Database Configuration
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///health_lock.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # Frontend / CORS
    FRONTEND_BASE_URL = os.getenv('FRONTEND_BASE_URL', 'http://localhost:5173').rstrip('/')
    CORS_ORIGINS = _split_origins(os.getenv('FRONTEND_ORIGIN', 'http://localhost:5173'))

    # Uploads
    MAX_PDF_BYTES = 10 * 1024 * 1024

    # Email notifications (disabled unless host, user and password are set)
    SMTP_HOST = os.getenv('SMTP_HOST')
    SMTP_PORT = int(os.getenv('SMTP_PORT', '587'))
    SMTP_USER = os.getenv('SMTP_USER')
    SMTP_PASS = os.getenv('SMTP_PASS')
    SMTP_TIMEOUT = int(os.getenv('SMTP_TIMEOUT', '10'))
    MAIL_WORKERS = int(os.getenv('MAIL_WORKERS', '2'))
    MAIL_FROM = os.getenv('MAIL_FROM', 'Health-Lock <no-reply@health-lock.local>')


class DevelopmentConfig(Config):
    """Development Configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = True
    TESTING = False


class TestingConfig(Config):
    """Testing Configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    DEBUG = True
    JWT_SECRET_KEY = 'testing-jwt-secret-key-with-enough-length'
    FRONTEND_BASE_URL = 'http://frontend.test'
    SMTP_HOST = None
    SMTP_USER = None
    SMTP_PASS = None


class ProductionConfig(Config):
    """Production Configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False
    TESTING = False
    PREFERRED_URL_SCHEME = 'https'
    AUTH_COOKIE_SECURE = True
    AUTH_COOKIE_SAMESITE = 'None'


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
