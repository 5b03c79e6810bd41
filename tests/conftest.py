"""Shared fixtures: a fresh application and in-memory database per test."""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from config import TestConfig
from passage_auth.services import build_auth_services
from passage_ext import create_app
from passage_ext.db import db


class FrozenClock:
    """Controllable stand-in for ``datetime.utcnow``."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture()
def app():
    app = create_app(TestConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def app_ctx(app):
    """Request context for tests that call services directly."""
    with app.test_request_context("/"):
        yield app
        db.session.remove()


@pytest.fixture()
def services(app_ctx):
    return build_auth_services(app_ctx.config)


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def outbox(app):
    return app.extensions.setdefault("mail_outbox", [])
