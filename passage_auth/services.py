"""Per-request wiring of the auth components."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import current_app, g

from passage_auth.cookies import CookieCodec, CookieSpec
from passage_auth.gateway import AuthGateway
from passage_auth.sessions import SessionManager
from passage_auth.store import CredentialStore
from passage_auth.totp import OtpPolicy
from passage_auth.verification import VerificationRegistry

VERIFICATION_COOKIE_SALT = "passage-verification"


@dataclass
class AuthServices:
    store: CredentialStore
    codec: CookieCodec
    policy: OtpPolicy
    sessions: SessionManager
    verifications: VerificationRegistry
    gateway: AuthGateway
    verification_cookie: CookieSpec


def build_auth_services(config) -> AuthServices:
    """Assemble a fresh set of services from application config."""
    store = CredentialStore()
    codec = CookieCodec(config["SECRET_KEY"], secure=bool(config.get("AUTH_COOKIE_SECURE", False)))
    policy = OtpPolicy.from_config(config)
    sessions = SessionManager(
        store,
        codec,
        cookie_name=config.get("AUTH_SESSION_COOKIE_NAME", "passage_session"),
        lifetime=timedelta(days=int(config.get("SESSION_LIFETIME_DAYS", 30))),
    )
    return AuthServices(
        store=store,
        codec=codec,
        policy=policy,
        sessions=sessions,
        verifications=VerificationRegistry(store, policy),
        gateway=AuthGateway(
            store,
            sessions,
            revoke_sessions_on_reset=bool(config.get("REVOKE_SESSIONS_ON_PASSWORD_RESET", False)),
        ),
        verification_cookie=CookieSpec(
            name=config.get("VERIFICATION_COOKIE_NAME", "passage_verification"),
            salt=VERIFICATION_COOKIE_SALT,
            max_age=int(config.get("VERIFICATION_COOKIE_MAX_AGE", 600)),
        ),
    )


def auth_services() -> AuthServices:
    """Return the services for the current request, building them on first use."""
    services = g.get("auth_services")
    if services is None:
        services = build_auth_services(current_app.config)
        g.auth_services = services
    return services
