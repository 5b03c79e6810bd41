"""Authentication helpers and Flask-Login integration."""
from __future__ import annotations

from functools import wraps
from typing import Callable

from flask import Flask, Response, g, redirect, request, url_for
from flask_login import LoginManager

from passage_ext.errors import AuthenticationFailure, wants_json

login_manager = LoginManager()
# The signed session cookie is the source of truth; Flask's own session is not used for identity.
login_manager.session_protection = None


def init_app(app: Flask) -> None:
    """Configure Flask-Login for the application."""
    login_manager.login_view = "passage_auth.login"
    login_manager.init_app(app)

    @login_manager.request_loader
    def load_user_from_cookie(_request):  # type: ignore[override]
        from passage_auth.services import auth_services

        resolution = resolve_request_session()
        if resolution.user_id is None:
            return None
        return auth_services().store.find_user_by_id(resolution.user_id)

    app.after_request(_apply_pending_cookies)


def resolve_request_session():
    """Resolve the session cookie once per request and remember the result on ``g``."""
    from passage_auth.services import auth_services

    resolution = g.get("auth_resolution")
    if resolution is None:
        sessions = auth_services().sessions
        resolution = sessions.resolve(request.cookies.get(sessions.spec.name))
        g.auth_resolution = resolution
        g.auth_user_id = resolution.user_id
        if resolution.cookie is not None:
            queue_cookie(resolution.cookie)
    return resolution


def queue_cookie(directive) -> None:
    """Defer a cookie change until the response exists."""
    pending = g.get("pending_cookies")
    if pending is None:
        pending = g.pending_cookies = []
    pending.append(directive)


def _apply_pending_cookies(response: Response) -> Response:
    already_set = {header.split("=", 1)[0] for header in response.headers.getlist("Set-Cookie")}
    for directive in g.get("pending_cookies", []):
        # A cookie the view wrote itself wins over a queued clear.
        if directive.name not in already_set:
            directive.apply(response)
    return response


def _login_url() -> str:
    if request.path in ("", "/"):
        return url_for("passage_auth.login")
    return url_for("passage_auth.login", redirectTo=request.full_path.rstrip("?"))


def require_user(view: Callable) -> Callable:
    """Only let requests with a live session through; others go to the login page."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        from passage_auth.sessions import RedirectRequired, authenticated_outcome

        outcome = authenticated_outcome(resolve_request_session(), login_url=_login_url())
        if isinstance(outcome, RedirectRequired):
            if wants_json():
                raise AuthenticationFailure(user_msg="Authentication required.")
            return redirect(outcome.location)
        return view(*args, **kwargs)

    return wrapped


def anonymous_redirect() -> Response | None:
    """Redirect home when the request carries a live session, else None."""
    from passage_auth.sessions import RedirectRequired, anonymous_outcome

    outcome = anonymous_outcome(resolve_request_session(), home_url=url_for("passage_web.index"))
    if isinstance(outcome, RedirectRequired):
        return redirect(outcome.location)
    return None


def anonymous_required(view: Callable) -> Callable:
    """Send already-authenticated users back home."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        bounce = anonymous_redirect()
        if bounce is not None:
            return bounce
        return view(*args, **kwargs)

    return wrapped
