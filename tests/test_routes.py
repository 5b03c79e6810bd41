"""End-to-end tests of the auth pages through the Flask test client."""
from __future__ import annotations

from urllib.parse import parse_qs, urlparse

from passage_auth.services import build_auth_services
from passage_ext.db import db
from passage_models.session import AuthSession
from passage_models.user import User
from passage_models.verification import Verification


def _last_email(outbox):
    assert outbox, "no email was captured"
    return outbox[-1]


def _onboard(client, outbox, *, email="a@x.com", username="alice", password="secret1", remember=False):
    response = client.post("/register", data={"email": email})
    assert response.status_code == 302
    otp = _last_email(outbox)["context"]["otp"]
    response = client.get(f"/verify?type=onboarding&target={email}&redirectTo=/onboarding&code={otp}")
    assert response.status_code == 302
    data = {
        "username": username,
        "name": "Alice A",
        "password": password,
        "confirm_password": password,
    }
    if remember:
        data["remember_me"] = "y"
    return client.post("/onboarding", data=data)


def test_healthz_reports_database(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.get_json()["database"] is True


def test_home_requires_login(client):
    response = client.get("/")
    assert response.status_code == 302
    assert response.headers["Location"] == "/login"


def test_register_sends_code_and_redirects_to_verify(client, outbox):
    response = client.get("/register")
    assert response.status_code == 200

    response = client.post("/register", data={"email": "A@x.com"})

    assert response.status_code == 302
    location = urlparse(response.headers["Location"])
    assert location.path == "/verify"
    query = parse_qs(location.query)
    assert query == {"type": ["onboarding"], "target": ["a@x.com"], "redirectTo": ["/onboarding"]}

    email = _last_email(outbox)
    assert email["to"] == ["a@x.com"]
    assert email["context"]["otp"] in email["text"]
    assert "code=" in email["context"]["verify_url"]


def test_full_onboarding_flow(app, client, outbox):
    response = _onboard(client, outbox)

    assert response.status_code == 302
    assert response.headers["Location"] == "/"
    assert client.get_cookie("passage_session") is not None
    assert client.get_cookie("passage_verification") is None

    home = client.get("/")
    assert home.status_code == 200
    assert b"alice" in home.data

    with app.app_context():
        assert db.session.scalar(db.select(db.func.count()).select_from(User)) == 1


def test_verify_post_form(client, outbox):
    client.post("/register", data={"email": "a@x.com"})
    otp = _last_email(outbox)["context"]["otp"]

    response = client.post(
        "/verify",
        data={"code": otp, "type": "onboarding", "target": "a@x.com", "redirect_to": "/onboarding"},
    )
    assert response.status_code == 302
    assert response.headers["Location"] == "/onboarding"
    assert client.get_cookie("passage_verification") is not None
    assert client.get("/onboarding").status_code == 200


def test_verify_rejects_wrong_code(client, outbox):
    client.post("/register", data={"email": "a@x.com"})
    otp = _last_email(outbox)["context"]["otp"]
    wrong = ("1" if otp[0] != "1" else "2") + otp[1:]

    response = client.get(f"/verify?type=onboarding&target=a@x.com&code={wrong}")
    assert response.status_code == 400
    assert b"Invalid code" in response.data
    assert client.get_cookie("passage_verification") is None


def test_verify_code_only_works_once(client, outbox):
    client.post("/register", data={"email": "a@x.com"})
    otp = _last_email(outbox)["context"]["otp"]

    assert client.get(f"/verify?type=onboarding&target=a@x.com&code={otp}").status_code == 302
    assert client.get(f"/verify?type=onboarding&target=a@x.com&code={otp}").status_code == 400


def test_verify_ignores_offsite_redirect(client, outbox):
    client.post("/register", data={"email": "a@x.com"})
    otp = _last_email(outbox)["context"]["otp"]

    response = client.get(f"/verify?type=onboarding&target=a@x.com&redirectTo=//evil.example&code={otp}")
    assert response.headers["Location"] == "/onboarding"


def test_onboarding_without_verification_goes_back_to_register(client):
    response = client.get("/onboarding")
    assert response.status_code == 303
    assert response.headers["Location"] == "/register"


def test_register_rejects_known_email(client, outbox):
    _onboard(client, outbox)
    client.post("/logout")

    response = client.post("/register", data={"email": "a@x.com"})
    assert response.status_code == 200
    assert b"A user already exists with this email" in response.data


def test_onboarding_rejects_taken_username(client, outbox):
    _onboard(client, outbox)
    client.post("/logout")

    response = _onboard(client, outbox, email="b@x.com", username="alice")
    assert response.status_code == 200
    assert b"A user already exists with this username" in response.data


def test_onboarding_password_mismatch(client, outbox):
    client.post("/register", data={"email": "a@x.com"})
    otp = _last_email(outbox)["context"]["otp"]
    client.get(f"/verify?type=onboarding&target=a@x.com&code={otp}")

    response = client.post(
        "/onboarding",
        data={"username": "alice", "name": "Alice", "password": "secret1", "confirm_password": "secret2"},
    )
    assert response.status_code == 200
    assert b"The passwords must match." in response.data


def test_login_and_logout(app, client, outbox):
    _onboard(client, outbox)
    client.post("/logout")
    assert client.get_cookie("passage_session") is None

    response = client.post("/login", data={"username": "Alice", "password": "secret1"})
    assert response.status_code == 302
    assert response.headers["Location"] == "/"
    assert client.get("/").status_code == 200

    response = client.post("/logout")
    assert response.status_code == 302
    assert response.headers["Location"] == "/"
    assert client.get("/").status_code == 302
    with app.app_context():
        assert db.session.scalar(db.select(db.func.count()).select_from(AuthSession)) == 0


def test_login_failure_is_generic(client, outbox):
    _onboard(client, outbox)
    client.post("/logout")

    wrong_password = client.post("/login", data={"username": "alice", "password": "wrongpass"})
    unknown_user = client.post("/login", data={"username": "nobody", "password": "secret1"})

    for response in (wrong_password, unknown_user):
        assert response.status_code == 401
        assert b"Invalid username or password" in response.data
    assert client.get_cookie("passage_session") is None


def test_login_honours_safe_redirect(client, outbox):
    _onboard(client, outbox)
    client.post("/logout")

    response = client.post("/login", data={"username": "alice", "password": "secret1", "redirect_to": "/healthz"})
    assert response.headers["Location"] == "/healthz"

    client.post("/logout")
    response = client.post("/login", data={"username": "alice", "password": "secret1", "redirect_to": "https://evil.example/"})
    assert response.headers["Location"] == "/"


def test_authenticated_user_is_sent_home_from_anonymous_pages(client, outbox):
    _onboard(client, outbox)
    for path in ("/login", "/register", "/forgot-password"):
        response = client.get(path)
        assert response.status_code == 302
        assert response.headers["Location"] == "/"


def test_verify_link_does_not_redeem_for_signed_in_user(app, client, outbox):
    _onboard(client, outbox)
    with app.test_request_context("/"):
        registry = build_auth_services(app.config).verifications
        otp = registry.issue("b@x.com", "onboarding", 600, origin="http://localhost").otp
        db.session.remove()

    response = client.get(f"/verify?type=onboarding&target=b%40x.com&code={otp}")

    assert response.status_code == 302
    assert response.headers["Location"] == "/"
    assert client.get_cookie("passage_verification") is None
    with app.test_request_context("/"):
        assert db.session.scalar(db.select(db.func.count()).select_from(Verification)) == 1
        db.session.remove()


def test_verify_post_is_not_gated_by_session(client, outbox):
    _onboard(client, outbox)

    response = client.post("/verify", data={"code": "000000", "type": "onboarding", "target": "b@x.com"})
    assert response.status_code == 400


def test_logout_get_only_redirects(client, outbox):
    _onboard(client, outbox)
    response = client.get("/logout")
    assert response.status_code == 302
    assert response.headers["Location"] == "/"
    assert client.get("/").status_code == 200


def test_stale_session_cookie_is_cleared(app, client, outbox):
    _onboard(client, outbox)
    with app.app_context():
        db.session.execute(db.delete(AuthSession))
        db.session.commit()

    response = client.get("/")
    assert response.status_code == 302
    assert response.headers["Location"] == "/login"
    assert client.get_cookie("passage_session") is None


def test_remember_me_sets_persistent_cookie(client, outbox):
    _onboard(client, outbox, remember=True)
    assert client.get_cookie("passage_session").expires is not None


def test_forgot_password_unknown_identifier(client):
    response = client.post("/forgot-password", data={"identifier": "ghost"})
    assert response.status_code == 200
    assert b"No user exists with this username or email" in response.data


def test_password_reset_flow(client, outbox):
    _onboard(client, outbox)
    client.post("/logout")

    response = client.post("/forgot-password", data={"identifier": "alice"})
    assert response.status_code == 302
    query = parse_qs(urlparse(response.headers["Location"]).query)
    assert query == {"type": ["reset-password"], "target": ["a@x.com"]}

    otp = _last_email(outbox)["context"]["otp"]
    response = client.get(f"/verify?type=reset-password&target=a@x.com&code={otp}")
    assert response.status_code == 302
    assert response.headers["Location"] == "/reset-password"

    assert client.get("/reset-password").status_code == 200
    response = client.post("/reset-password", data={"password": "newpass1", "confirm_password": "newpass1"})
    assert response.status_code == 302
    assert response.headers["Location"] == "/login"
    assert client.get_cookie("passage_verification") is None

    assert client.post("/login", data={"username": "alice", "password": "secret1"}).status_code == 401
    assert client.post("/login", data={"username": "alice", "password": "newpass1"}).status_code == 302


def test_reset_password_without_verification_restarts(client):
    response = client.get("/reset-password")
    assert response.status_code == 303
    assert response.headers["Location"] == "/forgot-password"


def test_email_failure_is_shown_on_form(app, client, monkeypatch):
    from passage_auth import routes
    from passage_ext.email import EmailResult

    monkeypatch.setattr(routes, "send_email", lambda **kwargs: EmailResult(ok=False, error="smtp down"))

    response = client.post("/register", data={"email": "a@x.com"})
    assert response.status_code == 200
    assert b"We could not send the email" in response.data


def test_responses_carry_request_id(client):
    response = client.get("/healthz")
    assert response.headers.get("X-Request-ID")
    assert response.headers.get("X-Response-Time")
