"""Blueprint routes for registration, verification, login and password reset."""
from __future__ import annotations

from flask import Response, current_app, flash, redirect, render_template, request, url_for

from passage_auth import auth_bp
from passage_auth.cookies import ONBOARDING_EMAIL_KEY, RESET_IDENTIFIER_KEY, CookieDirective
from passage_auth.forms import (
    ForgotPasswordForm,
    LoginForm,
    OnboardingForm,
    RegisterForm,
    ResetPasswordForm,
    VerifyForm,
)
from passage_auth.services import auth_services
from passage_auth.validation import normalize_email
from passage_auth.verification import IssuedVerification
from passage_ext.auth import anonymous_redirect, anonymous_required
from passage_ext.email import send_email
from passage_ext.errors import AppError, ConflictError, StateError, TransportError, ValidationError
from passage_ext.logging import log_warn
from passage_ext.security import limiter, rate, user_or_ip_rate_limit
from passage_models.audit import AuditLog
from passage_models.verification import VERIFICATION_TYPES

ONBOARDING = "onboarding"
RESET_PASSWORD = "reset-password"
INVALID_CODE = "Invalid code"


def _with_cookies(response: Response, *directives: CookieDirective) -> Response:
    for directive in directives:
        directive.apply(response)
    return response


def _origin() -> str:
    return request.host_url.rstrip("/")


def _safe_redirect(target: str | None) -> str | None:
    """Only same-site absolute paths are followed."""
    if not target or not target.startswith("/") or target.startswith("//") or "\\" in target:
        return None
    return target


def _add_error(form, error: AppError) -> None:
    field = getattr(error, "field", None)
    target = getattr(form, field, None) if field else None
    if target is not None and hasattr(target, "errors"):
        target.errors.append(error.user_msg)
    else:
        form.form_errors.append(error.user_msg)


def _verification_payload() -> dict:
    services = auth_services()
    spec = services.verification_cookie
    return services.codec.read(spec, request.cookies.get(spec.name)) or {}


def _send_verification_email(email: str, issued: IssuedVerification, type_: str) -> None:
    app_name = current_app.config.get("APP_NAME", "Passage")
    if type_ == RESET_PASSWORD:
        subject = f"{app_name} Password Reset"
        period = current_app.config["RESET_PASSWORD_VERIFICATION_PERIOD"]
    else:
        subject = f"Welcome to {app_name}!"
        period = current_app.config["ONBOARDING_VERIFICATION_PERIOD"]
    result = send_email(
        subject=subject,
        recipients=[email],
        html_template="emails/verification.html",
        text_template="emails/verification.txt",
        context={
            "app_name": app_name,
            "headline": subject,
            "otp": issued.otp,
            "verify_url": issued.verify_url,
            "expiry_minutes": max(int(period) // 60, 1),
            "purpose": type_,
        },
    )
    if not result.ok:
        raise TransportError(user_msg="We could not send the email. Please try again.", detail=result.error)


def _issue_and_send(email: str, type_: str, *, period: int, redirect_to: str | None = None) -> IssuedVerification:
    issued = auth_services().verifications.issue(email, type_, period, origin=_origin(), redirect_to=redirect_to)
    _send_verification_email(email, issued, type_)
    AuditLog.log("verification_issued", "verification", None, {"type": type_})
    return issued


@auth_bp.route("/register", methods=["GET", "POST"])
@limiter.limit(rate("REGISTER"), key_func=user_or_ip_rate_limit())
@anonymous_required
def register():
    """Collect an email address and send it an onboarding code."""
    form = RegisterForm()
    if form.validate_on_submit():
        try:
            email = normalize_email(form.email.data)
            if auth_services().store.find_user_by_email(email) is not None:
                raise ConflictError(user_msg="A user already exists with this email", field="email")
            issued = _issue_and_send(
                email,
                ONBOARDING,
                period=current_app.config["ONBOARDING_VERIFICATION_PERIOD"],
                redirect_to=url_for("passage_auth.onboarding"),
            )
        except (ValidationError, ConflictError, TransportError) as exc:
            _add_error(form, exc)
        else:
            return redirect(issued.redirect_to)
    return render_template("auth/register.html", form=form)


@auth_bp.route("/verify", methods=["GET", "POST"])
@limiter.limit(rate("OTP_VERIFY"), key_func=user_or_ip_rate_limit())
def verify():
    """Check an emailed code; a GET that already carries the code verifies straight away."""
    form = VerifyForm()
    if request.method == "GET":
        # Signed-in users following an emailed link must not burn the challenge.
        bounce = anonymous_redirect()
        if bounce is not None:
            return bounce
        form.type.data = request.args.get("type", "")
        form.target.data = request.args.get("target", "")
        form.redirect_to.data = request.args.get("redirectTo", "")
        code = request.args.get("code", "")
        if code:
            form.code.data = code
            return _complete_verification(form)
        return render_template("auth/verify.html", form=form)

    if form.validate_on_submit():
        return _complete_verification(form)
    return render_template("auth/verify.html", form=form), 400


def _complete_verification(form: VerifyForm):
    services = auth_services()
    type_ = form.type.data or ""
    target = (form.target.data or "").strip().lower()
    code = (form.code.data or "").strip()

    if type_ not in VERIFICATION_TYPES or not target or not services.verifications.consume(target, type_, code):
        log_warn("Verification code rejected", component="verification", context={"type": type_})
        form.code.errors = [INVALID_CODE]
        return render_template("auth/verify.html", form=form), 400

    AuditLog.log("verification_consumed", "verification", None, {"type": type_})
    spec = services.verification_cookie
    if type_ == ONBOARDING:
        cookie = services.codec.commit(spec, {ONBOARDING_EMAIL_KEY: target})
        location = _safe_redirect(form.redirect_to.data) or url_for("passage_auth.onboarding")
    else:
        cookie = services.codec.commit(spec, {RESET_IDENTIFIER_KEY: target})
        location = url_for("passage_auth.reset_password")
    return _with_cookies(redirect(location), cookie)


@auth_bp.route("/onboarding", methods=["GET", "POST"])
@anonymous_required
def onboarding():
    """Finish signup for the email proven in the verification step."""
    email = _verification_payload().get(ONBOARDING_EMAIL_KEY)
    if not email:
        raise StateError(user_msg="Verify your email first.", location=url_for("passage_auth.register"))

    form = OnboardingForm()
    if form.validate_on_submit():
        services = auth_services()
        try:
            issued = services.gateway.signup(
                form.username.data,
                form.name.data,
                email,
                form.password.data,
                remember_me=bool(form.remember_me.data),
                ip=request.remote_addr,
                user_agent=request.user_agent.string,
            )
        except (ValidationError, ConflictError) as exc:
            _add_error(form, exc)
        else:
            flash("Welcome aboard!", "success")
            response = redirect(url_for("passage_web.index"))
            return _with_cookies(response, issued.cookie, services.codec.destroy(services.verification_cookie))
    return render_template("auth/onboarding.html", form=form, email=email)


@auth_bp.route("/login", methods=["GET", "POST"])
@limiter.limit(rate("LOGIN"), key_func=user_or_ip_rate_limit())
@anonymous_required
def login():
    """Log an existing user into the system."""
    form = LoginForm()
    if request.method == "GET":
        form.redirect_to.data = request.args.get("redirectTo", "")
    if form.validate_on_submit():
        issued = auth_services().gateway.login(
            form.username.data,
            form.password.data,
            remember_me=bool(form.remember_me.data),
            ip=request.remote_addr,
            user_agent=request.user_agent.string,
        )
        if issued is None:
            form.form_errors.append("Invalid username or password")
            return render_template("auth/login.html", form=form), 401
        location = _safe_redirect(form.redirect_to.data) or url_for("passage_web.index")
        return _with_cookies(redirect(location), issued.cookie)
    return render_template("auth/login.html", form=form)


@auth_bp.route("/logout", methods=["GET", "POST"])
def logout():
    """Drop the current session; a GET only bounces home."""
    if request.method == "GET":
        return redirect(url_for("passage_web.index"))
    services = auth_services()
    result = services.gateway.logout(request.cookies.get(services.sessions.spec.name))
    return _with_cookies(redirect(result.location), result.cookie)


@auth_bp.route("/forgot-password", methods=["GET", "POST"])
@limiter.limit(rate("PASSWORD_RESET"), key_func=user_or_ip_rate_limit())
@anonymous_required
def forgot_password():
    """Send a reset code to the account found by email or username."""
    form = ForgotPasswordForm()
    if form.validate_on_submit():
        identifier = form.identifier.data.strip().lower()
        user = auth_services().store.find_user_by_email_or_username(identifier)
        if user is None:
            form.identifier.errors.append("No user exists with this username or email")
        else:
            try:
                issued = _issue_and_send(
                    user.email,
                    RESET_PASSWORD,
                    period=current_app.config["RESET_PASSWORD_VERIFICATION_PERIOD"],
                )
            except TransportError as exc:
                _add_error(form, exc)
            else:
                return redirect(issued.redirect_to)
    return render_template("auth/forgot_password.html", form=form)


@auth_bp.route("/reset-password", methods=["GET", "POST"])
@limiter.limit(rate("PASSWORD_RESET"), key_func=user_or_ip_rate_limit())
@anonymous_required
def reset_password():
    """Set a new password for the account whose reset code was verified."""
    services = auth_services()
    identifier = _verification_payload().get(RESET_IDENTIFIER_KEY)
    user = services.store.find_user_by_email_or_username(identifier) if identifier else None
    if user is None:
        raise StateError(user_msg="Start the password reset again.", location=url_for("passage_auth.forgot_password"))

    form = ResetPasswordForm()
    if form.validate_on_submit():
        try:
            services.gateway.reset_password(user.username, form.password.data)
        except ValidationError as exc:
            _add_error(form, exc)
        else:
            flash("Your password has been reset. Log in with the new one.", "success")
            response = redirect(url_for("passage_auth.login"))
            return _with_cookies(response, services.codec.destroy(services.verification_cookie))
    return render_template("auth/reset_password.html", form=form, user=user)
