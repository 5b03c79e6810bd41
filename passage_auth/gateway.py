"""Auth gateway: the façade request handlers use for login, signup and logout."""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError

from passage_auth.cookies import CookieDirective
from passage_auth.passwords import hash_password, needs_rehash, verify_password
from passage_auth.sessions import AccessOutcome, IssuedSession, SessionManager
from passage_auth.store import CredentialStore
from passage_auth.validation import normalize_email, normalize_username, validate_name, validate_password
from passage_ext.errors import ConflictError, StateError, StoreError
from passage_ext.logging import log_warn
from passage_models.audit import AuditLog
from passage_models.user import User


@dataclass(frozen=True)
class LogoutResult:
    cookie: CookieDirective
    location: str = "/"
    error: StoreError | None = None


class AuthGateway:
    """Credential checks and account creation on top of the store and session manager."""

    def __init__(
        self,
        store: CredentialStore,
        sessions: SessionManager,
        *,
        revoke_sessions_on_reset: bool = False,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.revoke_sessions_on_reset = revoke_sessions_on_reset

    def login(
        self,
        username: str,
        password: str,
        *,
        remember_me: bool = False,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> IssuedSession | None:
        """Return a new session, or None for any kind of mismatch."""
        normalized = (username or "").strip().lower()
        user = self.store.find_user_by_username(normalized) if normalized else None
        stored_hash = user.password.hash if user is not None and user.password is not None else None
        if user is None or not verify_password(password or "", stored_hash):
            AuditLog.log("login_failed", "user", user.id if user else None, {"username": normalized})
            return None

        if needs_rehash(stored_hash):
            self.store.update_user_password(user, hash_password(password))
        issued = self.sessions.create(user.id, remember_me, ip=ip, user_agent=user_agent)
        AuditLog.log("login", "session", None, {"remember_me": remember_me}, user_id=user.id)
        current_app.logger.info("User logged in", extra={"user_id": user.id, "component": "auth"})
        return issued

    def signup(
        self,
        username: str,
        name: str,
        email: str,
        password: str,
        *,
        remember_me: bool = False,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> IssuedSession:
        """Create the user, its password and a first session, all or nothing."""
        try:
            with self.store.transaction():
                user = self._insert_user(username, name, email, password)
                issued = self.sessions.create(user.id, remember_me, ip=ip, user_agent=user_agent)
        except IntegrityError as exc:
            # Lost a race with another signup for the same username or email.
            raise _duplicate(exc) from exc

        AuditLog.log("signup", "user", user.id, {"username": user.username}, user_id=user.id)
        current_app.logger.info("New user created", extra={"user_id": user.id, "component": "auth"})
        return issued

    def create_account(self, username: str, name: str, email: str, password: str) -> User:
        """Create a user without a session, for administrative tooling."""
        try:
            with self.store.transaction():
                user = self._insert_user(username, name, email, password)
        except IntegrityError as exc:
            raise _duplicate(exc) from exc
        AuditLog.log("signup", "user", user.id, {"username": user.username, "source": "cli"}, user_id=user.id)
        return user

    def _insert_user(self, username: str, name: str, email: str, password: str) -> User:
        username = normalize_username(username)
        email = normalize_email(email)
        name = validate_name(name)
        password = validate_password(password)
        if self.store.find_user_by_username(username) is not None:
            raise ConflictError(user_msg="A user already exists with this username", field="username")
        if self.store.find_user_by_email(email) is not None:
            raise ConflictError(user_msg="A user already exists with this email", field="email")
        return self.store.create_user(
            username=username,
            name=name,
            email=email,
            password_hash=hash_password(password),
        )

    def reset_password(self, username: str, new_password: str, *, current_session_id: str | None = None) -> None:
        new_password = validate_password(new_password)
        user = self.store.find_user_by_username((username or "").strip().lower())
        if user is None:
            raise StateError(user_msg="Start the password reset again.", location="/forgot-password")

        self.store.update_user_password(user, hash_password(new_password))
        revoked = 0
        if self.revoke_sessions_on_reset:
            revoked = self.sessions.revoke_all(user.id, except_session_id=current_session_id)
        AuditLog.log("password_reset", "user", user.id, {"revoked_sessions": revoked}, user_id=user.id)

    def logout(self, raw_cookie: str | None) -> LogoutResult:
        """Tear the session down best-effort; the redirect happens regardless."""
        teardown = self.sessions.destroy(raw_cookie)
        if teardown.error is not None:
            log_warn("Logout could not delete the session row", component="auth", context={"error_code": teardown.error.code})
        else:
            AuditLog.log("logout", "session", None)
        return LogoutResult(cookie=teardown.cookie, location="/", error=teardown.error)

    def require_authenticated(self, raw_cookie: str | None, *, login_url: str = "/login") -> AccessOutcome:
        return self.sessions.require_authenticated(raw_cookie, login_url=login_url)

    def require_anonymous(self, raw_cookie: str | None, *, home_url: str = "/") -> AccessOutcome:
        return self.sessions.require_anonymous(raw_cookie, home_url=home_url)


def _duplicate(exc: IntegrityError) -> ConflictError:
    return ConflictError(user_msg="A user already exists with this username or email", detail=str(exc.orig))
