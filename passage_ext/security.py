"""Security-related extensions such as CSRF, headers and rate limiting."""
from __future__ import annotations

from typing import Callable

from flask import Flask, current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_talisman import Talisman
from flask_wtf import CSRFProtect

csrf = CSRFProtect()
limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
talisman = Talisman()


def init_app(app: Flask) -> None:
    """Register security extensions against the Flask application."""
    csrf.init_app(app)

    # Flask-Limiter reads RATELIMIT_DEFAULT, RATELIMIT_STORAGE_URI and RATELIMIT_ENABLED itself.
    app.config.setdefault("RATELIMIT_DEFAULT", "100 per minute")
    app.config.setdefault("RATELIMIT_HEADERS_ENABLED", True)
    limiter.init_app(app)

    if app.config.get("SECURITY_HEADERS", True):
        talisman.init_app(
            app,
            content_security_policy=app.config.get("CONTENT_SECURITY_POLICY"),
            feature_policy=None,
            force_https=app.config.get("AUTH_COOKIE_SECURE", False),
            session_cookie_secure=app.config.get("SESSION_COOKIE_SECURE", False),
            referrer_policy="strict-origin-when-cross-origin",
        )


def rate(name: str) -> Callable[[], str]:
    """Per-route limit looked up from ``RATES`` at request time."""

    def _limit() -> str:
        return current_app.config["RATES"][name]

    return _limit


def user_or_ip_rate_limit() -> Callable[[], str]:
    """Limiter key that prefers the authenticated user id when available."""

    def _key_func() -> str:
        from flask_login import current_user  # Lazy import to avoid cycles.

        if current_user.is_authenticated:  # type: ignore[attr-defined]
            return f"user:{current_user.get_id()}"  # type: ignore[no-any-return]
        return get_remote_address()

    return _key_func
