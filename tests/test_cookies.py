"""Tests for the signed cookie codec."""
from __future__ import annotations

from datetime import datetime

from flask import Response
from itsdangerous.timed import TimestampSigner

from passage_auth.cookies import CookieCodec, CookieSpec

SPEC = CookieSpec(name="passage_verification", salt="passage-verification", max_age=600)


def test_commit_then_read():
    codec = CookieCodec("secret")
    directive = codec.commit(SPEC, {"onboarding_email": "a@x.com"})

    assert directive.name == "passage_verification"
    assert directive.max_age == 600
    assert codec.read(SPEC, directive.value) == {"onboarding_email": "a@x.com"}


def test_missing_cookie_reads_empty():
    assert CookieCodec("secret").read(SPEC, None) == {}
    assert CookieCodec("secret").read(SPEC, "") == {}


def test_tampered_or_foreign_cookie_is_rejected():
    codec = CookieCodec("secret")
    value = codec.commit(SPEC, {"onboarding_email": "a@x.com"}).value

    assert codec.read(SPEC, value[:-2] + "xx") is None
    assert CookieCodec("other-secret").read(SPEC, value) is None
    assert codec.read(CookieSpec(name=SPEC.name, salt="passage-session"), value) is None


def test_cookie_older_than_max_age_is_rejected(monkeypatch):
    codec = CookieCodec("secret")
    monkeypatch.setattr(TimestampSigner, "get_timestamp", lambda self: 1_000_000)
    value = codec.commit(SPEC, {"reset_identifier": "a@x.com"}).value
    monkeypatch.undo()

    assert codec.read(SPEC, value) is None
    assert codec.read(CookieSpec(name=SPEC.name, salt=SPEC.salt), value) == {"reset_identifier": "a@x.com"}


def test_directive_sets_hardened_cookie():
    codec = CookieCodec("secret", secure=True)
    expires = datetime(2030, 1, 1)
    response = codec.commit(CookieSpec(name="passage_session", salt="s"), {"session_id": "abc"}, expires=expires).apply(Response())

    header = response.headers["Set-Cookie"]
    assert header.startswith("passage_session=")
    assert "HttpOnly" in header
    assert "Secure" in header
    assert "SameSite=Lax" in header
    assert "Path=/" in header
    assert "2030" in header


def test_destroy_directive_expires_cookie():
    directive = CookieCodec("secret").destroy(SPEC)
    assert directive.clears

    header = directive.apply(Response()).headers["Set-Cookie"]
    assert header.startswith("passage_verification=;")
    assert "Max-Age=0" in header
