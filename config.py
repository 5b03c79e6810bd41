"""Application configuration classes and helpers."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Iterable

from dotenv import load_dotenv

# Ensure environment variables from a local .env file are available during
# development. Production deployments should rely on platform-specific secrets
# management instead of an on-disk .env file.
load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env", override=False)


def _bool(value: str | None, default: bool = False) -> bool:
    """Parse environment flags such as "true", "1", "yes"."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y"}


def _split(value: str | None, default: Iterable[str]) -> list[str]:
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


class BaseConfig:
    """Shared configuration defaults used by every environment."""

    APP_NAME = "Passage"
    VERSION = "0.1.0"

    SECRET_KEY = os.getenv("SECRET_KEY", "please-change-me")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///passage.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Flask's own cookie only carries flash messages and the CSRF token.
    SESSION_COOKIE_NAME = "passage_flash"
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = _bool(os.getenv("SECURE_COOKIES"), default=False)

    AUTH_SESSION_COOKIE_NAME = os.getenv("AUTH_SESSION_COOKIE_NAME", "passage_session")
    VERIFICATION_COOKIE_NAME = os.getenv("VERIFICATION_COOKIE_NAME", "passage_verification")
    VERIFICATION_COOKIE_MAX_AGE = int(os.getenv("VERIFICATION_COOKIE_MAX_AGE", "600"))
    AUTH_COOKIE_SECURE = SESSION_COOKIE_SECURE
    SESSION_LIFETIME_DAYS = int(os.getenv("SESSION_LIFETIME_DAYS", "30"))

    OTP_ALGORITHM = os.getenv("OTP_ALGORITHM", "SHA256").upper()
    OTP_DIGITS = int(os.getenv("OTP_DIGITS", "6"))
    OTP_CHARSET = os.getenv("OTP_CHARSET", "0123456789")
    OTP_MIN_ENTROPY_BITS = float(os.getenv("OTP_MIN_ENTROPY_BITS", "19.9"))
    ONBOARDING_VERIFICATION_PERIOD = int(os.getenv("ONBOARDING_VERIFICATION_PERIOD", "600"))
    RESET_PASSWORD_VERIFICATION_PERIOD = int(os.getenv("RESET_PASSWORD_VERIFICATION_PERIOD", "600"))
    REVOKE_SESSIONS_ON_PASSWORD_RESET = _bool(os.getenv("REVOKE_SESSIONS_ON_PASSWORD_RESET"), default=False)

    WTF_CSRF_TIME_LIMIT = 3600

    RATELIMIT_HEADERS_ENABLED = True
    RATELIMIT_DEFAULT = "100 per minute"
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")

    SECURITY_HEADERS = True
    CONTENT_SECURITY_POLICY: Dict[str, str] = {
        "default-src": "'self'",
        "style-src": "'self' 'unsafe-inline'",
        "img-src": "'self' data:",
        "object-src": "'none'",
        "frame-ancestors": "'self'",
    }

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.getenv("LOG_FORMAT", "json").lower()
    REQUEST_BODY_LOG_MAX = int(os.getenv("REQUEST_BODY_LOG_MAX", "2048"))
    REDACT_KEYS = _split(
        os.getenv("REDACT_KEYS"),
        ("password", "confirm_password", "code", "csrf_token", "RESEND_API_KEY", "Authorization"),
    )
    PREFERRED_URL_SCHEME = "https" if SESSION_COOKIE_SECURE else "http"

    # Flask-Limiter default limits can be overridden per route.
    RATES = {
        "LOGIN": os.getenv("RATE_LIMIT_LOGIN", "10 per minute"),
        "REGISTER": os.getenv("RATE_LIMIT_REGISTER", "5 per minute"),
        "OTP_VERIFY": os.getenv("RATE_LIMIT_OTP_VERIFY", "12 per minute"),
        "PASSWORD_RESET": os.getenv("RATE_LIMIT_PASSWORD_RESET", "5 per minute"),
    }

    EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "smtp").lower()
    EMAIL_FROM = os.getenv("EMAIL_FROM", "onboarding@resend.dev")
    MAIL_SUPPRESS_SEND = _bool(os.getenv("MAIL_SUPPRESS_SEND"), default=False)
    RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
    RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
    EMAIL_TIMEOUT_SECS = int(os.getenv("EMAIL_TIMEOUT_SECS", "15"))

    SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER = os.getenv("SMTP_USER", "")
    SMTP_PASS = os.getenv("SMTP_PASS", "")
    SMTP_USE_TLS = _bool(os.getenv("SMTP_USE_TLS"), default=True)
    SMTP_USE_SSL = _bool(os.getenv("SMTP_USE_SSL"), default=False)


class DevConfig(BaseConfig):
    """Development defaults with verbose logging and auto reload."""

    DEBUG = True
    ENV = "development"
    TEMPLATES_AUTO_RELOAD = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "plain").lower()


class ProdConfig(BaseConfig):
    """Production defaults focused on security and performance."""

    DEBUG = False
    ENV = "production"
    SESSION_COOKIE_SECURE = True
    AUTH_COOKIE_SECURE = True
    PREFERRED_URL_SCHEME = "https"
    RATELIMIT_DEFAULT = os.getenv("RATE_LIMIT_DEFAULT", "60 per minute")


class TestConfig(BaseConfig):
    """Isolated settings for the pytest suite."""

    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS: Dict[str, object] = {}
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    SECURITY_HEADERS = False
    MAIL_SUPPRESS_SEND = True
    EMAIL_BACKEND = "smtp"
    LOG_LEVEL = "WARNING"
    LOG_FORMAT = "plain"
