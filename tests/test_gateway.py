"""Tests for signup, login, logout and password reset through the gateway."""
from __future__ import annotations

from datetime import datetime

import pytest

from passage_auth.services import build_auth_services
from passage_ext.db import db
from passage_ext.errors import ConflictError, StateError, ValidationError
from passage_models.audit import AuditLog
from passage_models.password import Password
from passage_models.session import AuthSession
from passage_models.user import User


def _count(model) -> int:
    return db.session.scalar(db.select(db.func.count()).select_from(model))


@pytest.fixture()
def gateway(services):
    return services.gateway


@pytest.fixture()
def alice(gateway):
    return gateway.signup("alice", "Alice A", "a@x.com", "secret1")


def test_signup_creates_user_password_and_session(gateway, alice):
    assert _count(User) == 1
    assert _count(Password) == 1
    assert _count(AuthSession) == 1

    user = db.session.scalars(db.select(User)).one()
    assert user.username == "alice"
    assert user.email == "a@x.com"
    assert user.password.hash != "secret1"

    remaining = alice.session.expiration_date - datetime.utcnow()
    assert abs(remaining.total_seconds() - 30 * 86400) < 60
    assert alice.session.user_id == user.id


def test_signup_normalises_username_and_email(gateway):
    issued = gateway.signup("Bob_1", "Bob", " Bob@Mail.COM ", "secret1")
    user = db.session.get(User, issued.session.user_id)
    assert user.username == "bob_1"
    assert user.email == "bob@mail.com"


def test_login_returns_new_session_not_new_user(gateway, alice):
    issued = gateway.login("ALICE", "secret1")

    assert issued is not None
    assert issued.session.id != alice.session.id
    assert _count(User) == 1
    assert _count(AuthSession) == 2


def test_login_failures_are_indistinguishable(gateway, alice):
    assert gateway.login("alice", "wrongpass") is None
    assert gateway.login("nobody", "secret1") is None
    assert gateway.login("", "") is None
    assert _count(AuthSession) == 1

    actions = db.session.scalars(db.select(AuditLog.action)).all()
    assert actions.count("login_failed") == 3


def test_login_fails_for_user_without_password(gateway, services):
    services.store.create_user(username="nopass", name="No Pass", email="n@x.com", password_hash="x")
    user = services.store.find_user_by_username("nopass")
    db.session.delete(user.password)
    db.session.commit()

    assert gateway.login("nopass", "anything") is None


def test_duplicate_username_and_email_conflict(gateway, alice):
    with pytest.raises(ConflictError) as username_clash:
        gateway.signup("alice", "Other", "other@x.com", "secret1")
    assert username_clash.value.field == "username"

    with pytest.raises(ConflictError) as email_clash:
        gateway.signup("alice2", "Other", "A@x.com", "secret1")
    assert email_clash.value.field == "email"

    assert _count(User) == 1
    assert _count(AuthSession) == 1


@pytest.mark.parametrize(
    "username, email, password, field",
    [
        ("ab", "c@x.com", "secret1", "username"),
        ("has space", "c@x.com", "secret1", "username"),
        ("a" * 21, "c@x.com", "secret1", "username"),
        ("carol", "not-an-email", "secret1", "email"),
        ("carol", "c@x.com", "12345", "password"),
        ("carol", "c@x.com", "x" * 21, "password"),
    ],
)
def test_signup_validation(gateway, username, email, password, field):
    with pytest.raises(ValidationError) as exc:
        gateway.signup(username, "Carol", email, password)
    assert exc.value.field == field
    assert _count(User) == 0


def test_reset_flow_redeems_code_once_and_swaps_password(services, alice):
    registry = services.verifications
    issued = registry.issue("a@x.com", "reset-password", 600, origin="http://localhost")

    assert registry.consume("a@x.com", "reset-password", issued.otp) is True
    assert registry.consume("a@x.com", "reset-password", issued.otp) is False

    services.gateway.reset_password("alice", "newpass1")

    assert services.gateway.login("alice", "secret1") is None
    assert services.gateway.login("alice", "newpass1") is not None


def test_reset_keeps_other_sessions_by_default(services, alice):
    services.gateway.reset_password("alice", "newpass1")
    assert db.session.get(AuthSession, alice.session.id) is not None


def test_reset_can_revoke_other_sessions(app_ctx, alice):
    app_ctx.config["REVOKE_SESSIONS_ON_PASSWORD_RESET"] = True
    gateway = build_auth_services(app_ctx.config).gateway
    current = gateway.login("alice", "secret1")

    gateway.reset_password("alice", "newpass1", current_session_id=current.session.id)

    remaining = db.session.scalars(db.select(AuthSession.id)).all()
    assert remaining == [current.session.id]


def test_reset_for_unknown_user_restarts_flow(gateway):
    with pytest.raises(StateError) as exc:
        gateway.reset_password("ghost", "newpass1")
    assert exc.value.location == "/forgot-password"


def test_logout_is_best_effort_and_redirects_home(services, alice):
    result = services.gateway.logout(alice.cookie.value)

    assert result.location == "/"
    assert result.error is None
    assert result.cookie.clears
    assert _count(AuthSession) == 0

    again = services.gateway.logout(alice.cookie.value)
    assert again.error is None
    assert again.cookie.clears


def test_create_account_has_no_session(gateway):
    user = gateway.create_account("dave", "Dave", "d@x.com", "secret1")
    assert user.username == "dave"
    assert _count(AuthSession) == 0


def test_signup_leaves_nothing_behind_when_session_creation_fails(services, monkeypatch):
    def broken(**kwargs):
        raise RuntimeError("session table unavailable")

    monkeypatch.setattr(services.store, "create_session", broken)

    with pytest.raises(RuntimeError):
        services.gateway.signup("alice", "Alice A", "a@x.com", "secret1")

    assert _count(User) == 0
    assert _count(Password) == 0
    assert _count(AuthSession) == 0
