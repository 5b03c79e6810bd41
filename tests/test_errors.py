"""Tests for the error taxonomy and global handlers."""
from __future__ import annotations

import pytest

from config import TestConfig
from passage_ext import create_app
from passage_ext.errors import AuthenticationFailure, ConflictError, StateError, TransportError, ValidationError


@pytest.fixture()
def error_app():
    app = create_app(TestConfig)

    @app.route("/boom/conflict")
    def conflict():
        raise ConflictError(user_msg="A user already exists with this email", field="email")

    @app.route("/boom/state")
    def state():
        raise StateError(user_msg="Verify your email first.", location="/register")

    @app.route("/boom/unexpected")
    def unexpected():
        raise RuntimeError("kaboom")

    @app.route("/api/boom")
    def api_boom():
        raise TransportError(user_msg="We could not send the email.", detail="smtp down")

    return app


def test_status_codes_per_error_type():
    assert ValidationError(user_msg="bad").http_status == 400
    assert AuthenticationFailure(user_msg="no").http_status == 401
    assert ConflictError(user_msg="dup").http_status == 409
    assert StateError(user_msg="flow").http_status == 303
    assert TransportError(user_msg="mail").http_status == 503
    assert ConflictError(user_msg="dup").code == "CONFLICT"
    assert str(ValidationError(user_msg="bad")) == "bad"


def test_conflict_renders_html_page(error_app):
    response = error_app.test_client().get("/boom/conflict")
    assert response.status_code == 409
    assert b"A user already exists with this email" in response.data
    assert response.headers.get("X-Request-ID")


def test_conflict_as_json_when_requested(error_app):
    response = error_app.test_client().get("/boom/conflict", headers={"Accept": "application/json"})
    assert response.status_code == 409
    assert response.get_json()["error"]["code"] == "CONFLICT"


def test_state_error_redirects_to_flow_start(error_app):
    response = error_app.test_client().get("/boom/state")
    assert response.status_code == 303
    assert response.headers["Location"] == "/register"


def test_api_errors_are_json_with_detail_in_testing(error_app):
    response = error_app.test_client().get("/api/boom")
    assert response.status_code == 503
    payload = response.get_json()["error"]
    assert payload["code"] == "TRANSPORT"
    assert payload["detail"] == "smtp down"


def test_unexpected_exception_becomes_500(error_app):
    response = error_app.test_client().get("/boom/unexpected")
    assert response.status_code == 500


def test_unknown_route_is_404(error_app):
    response = error_app.test_client().get("/nope", headers={"Accept": "application/json"})
    assert response.status_code == 404
    assert response.get_json()["error"]["code"] == "NOT_FOUND"
