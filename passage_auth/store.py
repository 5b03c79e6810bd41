"""Credential store: the only place the auth subsystem touches the database."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session as OrmSession

from passage_ext.db import db
from passage_models.password import Password
from passage_models.session import AuthSession
from passage_models.user import User
from passage_models.verification import Verification

_VERIFICATION_FIELDS = ("secret", "algorithm", "period", "digits", "char_set", "expires_at")


class CredentialStore:
    """Lookup/create/update/delete for users, passwords, sessions and verifications.

    Each public call commits on its own unless it runs inside ``transaction()``,
    in which case work is only flushed and the whole group commits or rolls
    back together. Instances are request scoped; do not share them.
    """

    def __init__(self, session: OrmSession | None = None) -> None:
        self._session = session
        self._in_transaction = False

    @property
    def session(self) -> OrmSession:
        return self._session if self._session is not None else db.session

    @contextmanager
    def transaction(self) -> Iterator["CredentialStore"]:
        if self._in_transaction:
            yield self
            return
        self._in_transaction = True
        try:
            yield self
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        finally:
            self._in_transaction = False

    def _commit(self) -> None:
        if self._in_transaction:
            self.session.flush()
        else:
            self.session.commit()

    # Users -----------------------------------------------------------------

    def find_user_by_id(self, user_id: str) -> User | None:
        return self.session.get(User, user_id)

    def find_user_by_username(self, username: str) -> User | None:
        return self.session.scalars(select(User).where(User.username == username).limit(1)).first()

    def find_user_by_email(self, email: str) -> User | None:
        return self.session.scalars(select(User).where(User.email == email).limit(1)).first()

    def find_user_by_email_or_username(self, identifier: str) -> User | None:
        stmt = select(User).where(or_(User.email == identifier, User.username == identifier)).limit(1)
        return self.session.scalars(stmt).first()

    def create_user(self, *, username: str, name: str, email: str, password_hash: str) -> User:
        user = User(username=username, name=name, email=email)
        user.password = Password(hash=password_hash)
        self.session.add(user)
        self._commit()
        return user

    def update_user_password(self, user: User, password_hash: str) -> None:
        if user.password is None:
            user.password = Password(hash=password_hash)
        else:
            user.password.hash = password_hash
        self.session.add(user)
        self._commit()

    # Sessions --------------------------------------------------------------

    def create_session(
        self,
        *,
        user_id: str,
        expiration_date: datetime,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> AuthSession:
        record = AuthSession(user_id=user_id, expiration_date=expiration_date, ip=ip, user_agent=user_agent)
        self.session.add(record)
        self._commit()
        return record

    def find_session_by_id(self, session_id: str, *, live_at: datetime | None = None) -> AuthSession | None:
        """Fetch a session, optionally only when it has not expired by ``live_at``."""
        stmt = select(AuthSession).where(AuthSession.id == session_id)
        if live_at is not None:
            stmt = stmt.where(AuthSession.expiration_date > live_at)
        return self.session.scalars(stmt.limit(1)).first()

    def delete_session(self, session_id: str) -> int:
        result = self.session.execute(
            delete(AuthSession).where(AuthSession.id == session_id).execution_options(synchronize_session=False)
        )
        self._commit()
        return result.rowcount or 0

    def delete_sessions_by_user(self, user_id: str, *, except_id: str | None = None) -> int:
        stmt = delete(AuthSession).where(AuthSession.user_id == user_id)
        if except_id is not None:
            stmt = stmt.where(AuthSession.id != except_id)
        result = self.session.execute(stmt.execution_options(synchronize_session=False))
        self._commit()
        return result.rowcount or 0

    def delete_expired_sessions(self, now: datetime) -> int:
        result = self.session.execute(
            delete(AuthSession).where(AuthSession.expiration_date <= now).execution_options(synchronize_session=False)
        )
        self._commit()
        return result.rowcount or 0

    # Verifications ---------------------------------------------------------

    def find_verification(self, target: str, type_: str) -> Verification | None:
        stmt = select(Verification).where(Verification.target == target, Verification.type == type_).limit(1)
        return self.session.scalars(stmt).first()

    def upsert_verification(self, *, target: str, type_: str, **fields: Any) -> None:
        """Create the row for ``(target, type)`` or replace every challenge field on it."""
        values = {key: fields[key] for key in _VERIFICATION_FIELDS if key in fields}
        dialect = self.session.get_bind().dialect.name
        if dialect in {"sqlite", "postgresql"}:
            if dialect == "sqlite":
                from sqlalchemy.dialects.sqlite import insert
            else:
                from sqlalchemy.dialects.postgresql import insert
            stmt = insert(Verification).values(target=target, type=type_, created_at=datetime.utcnow(), **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["target", "type"],
                set_={**values, "created_at": stmt.excluded.created_at},
            )
            self.session.execute(stmt)
        else:
            record = self.find_verification(target, type_)
            if record is None:
                record = Verification(target=target, type=type_)
            for key, value in values.items():
                setattr(record, key, value)
            record.created_at = datetime.utcnow()
            self.session.add(record)
        self._commit()
        # Identity-map copies loaded before the upsert are stale now.
        self.session.expire_all()

    def delete_verification(self, target: str, type_: str, *, expected_secret: str | None = None) -> int:
        """Delete the pair's row and return how many rows went away.

        With ``expected_secret`` the delete only matches the challenge that was
        read, so a concurrent redemption or a newer ``issue`` makes this a no-op.
        """
        stmt = delete(Verification).where(Verification.target == target, Verification.type == type_)
        if expected_secret is not None:
            stmt = stmt.where(Verification.secret == expected_secret)
        result = self.session.execute(stmt.execution_options(synchronize_session=False))
        self._commit()
        return result.rowcount or 0

    def delete_expired_verifications(self, now: datetime) -> int:
        stmt = delete(Verification).where(Verification.expires_at.is_not(None), Verification.expires_at <= now)
        result = self.session.execute(stmt.execution_options(synchronize_session=False))
        self._commit()
        return result.rowcount or 0
