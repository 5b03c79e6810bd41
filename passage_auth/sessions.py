"""Database-backed login sessions mirrored in a signed session cookie."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Union

from sqlalchemy.exc import SQLAlchemyError

from passage_auth.cookies import SESSION_ID_KEY, CookieCodec, CookieDirective, CookieSpec
from passage_auth.store import CredentialStore
from passage_ext.errors import StoreError
from passage_ext.logging import log_warn
from passage_models.session import AuthSession

DEFAULT_LIFETIME = timedelta(days=30)
SESSION_COOKIE_SALT = "passage-session"


@dataclass(frozen=True)
class IssuedSession:
    session: AuthSession
    cookie: CookieDirective


@dataclass(frozen=True)
class Resolution:
    """Outcome of reading the session cookie.

    ``cookie`` is set when the incoming cookie must be cleared because it is
    forged or points at a session that no longer exists.
    """

    user_id: str | None
    session_id: str | None = None
    cookie: CookieDirective | None = None

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None


@dataclass(frozen=True)
class Teardown:
    cookie: CookieDirective
    error: StoreError | None = None


@dataclass(frozen=True)
class Authenticated:
    user_id: str
    session_id: str


@dataclass(frozen=True)
class Anonymous:
    cookie: CookieDirective | None = None


@dataclass(frozen=True)
class RedirectRequired:
    location: str
    cookie: CookieDirective | None = None


AccessOutcome = Union[Authenticated, Anonymous, RedirectRequired]


class SessionManager:
    """Create, resolve and destroy sessions.

    Every resolve goes to the store; nothing is cached between requests.
    """

    def __init__(
        self,
        store: CredentialStore,
        codec: CookieCodec,
        *,
        cookie_name: str = "passage_session",
        lifetime: timedelta = DEFAULT_LIFETIME,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.store = store
        self.codec = codec
        self.lifetime = lifetime
        self.clock = clock
        self.spec = CookieSpec(name=cookie_name, salt=SESSION_COOKIE_SALT)

    def create(
        self,
        user_id: str,
        remember_me: bool = False,
        *,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> IssuedSession:
        expiration_date = self.clock() + self.lifetime
        record = self.store.create_session(
            user_id=user_id,
            expiration_date=expiration_date,
            ip=ip,
            user_agent=(user_agent or "")[:255] or None,
        )
        cookie = self.codec.commit(
            self.spec,
            {SESSION_ID_KEY: record.id},
            expires=expiration_date if remember_me else None,
        )
        return IssuedSession(session=record, cookie=cookie)

    def session_id_from(self, raw_cookie: str | None) -> str | None:
        payload = self.codec.read(self.spec, raw_cookie)
        if not payload:
            return None
        session_id = payload.get(SESSION_ID_KEY)
        return session_id if isinstance(session_id, str) and session_id else None

    def resolve(self, raw_cookie: str | None) -> Resolution:
        payload = self.codec.read(self.spec, raw_cookie)
        if payload is None:
            return Resolution(user_id=None, cookie=self.codec.destroy(self.spec))
        session_id = payload.get(SESSION_ID_KEY)
        if not isinstance(session_id, str) or not session_id:
            # Signed but carrying no session id.
            return Resolution(user_id=None, cookie=self.codec.destroy(self.spec) if raw_cookie else None)

        record = self.store.find_session_by_id(session_id, live_at=self.clock())
        if record is not None:
            return Resolution(user_id=record.user_id, session_id=record.id)

        # Expired or deleted: drop the row if it is still there and clear the cookie.
        teardown = self._teardown(session_id)
        return Resolution(user_id=None, cookie=teardown.cookie)

    def destroy(self, raw_cookie: str | None) -> Teardown:
        """Delete the referenced session best-effort and always clear the cookie."""
        return self._teardown(self.session_id_from(raw_cookie))

    def _teardown(self, session_id: str | None) -> Teardown:
        error = None
        if session_id:
            try:
                self.store.delete_session(session_id)
            except SQLAlchemyError as exc:
                self.store.session.rollback()
                error = StoreError(user_msg="Could not remove the session.", detail=str(exc))
                log_warn("Session delete failed", component="sessions", context={"error": str(exc)})
        return Teardown(cookie=self.codec.destroy(self.spec), error=error)

    def require_authenticated(self, raw_cookie: str | None, *, login_url: str = "/login") -> AccessOutcome:
        return authenticated_outcome(self.resolve(raw_cookie), login_url=login_url)

    def require_anonymous(self, raw_cookie: str | None, *, home_url: str = "/") -> AccessOutcome:
        return anonymous_outcome(self.resolve(raw_cookie), home_url=home_url)

    def revoke_all(self, user_id: str, except_session_id: str | None = None) -> int:
        return self.store.delete_sessions_by_user(user_id, except_id=except_session_id)

    def prune(self, now: datetime | None = None) -> int:
        return self.store.delete_expired_sessions(now or self.clock())


def authenticated_outcome(resolution: Resolution, *, login_url: str = "/login") -> AccessOutcome:
    if resolution.user_id is not None:
        return Authenticated(user_id=resolution.user_id, session_id=resolution.session_id or "")
    return RedirectRequired(location=login_url, cookie=resolution.cookie)


def anonymous_outcome(resolution: Resolution, *, home_url: str = "/") -> AccessOutcome:
    if resolution.user_id is not None:
        return RedirectRequired(location=home_url)
    return Anonymous(cookie=resolution.cookie)
