"""Transactional email delivery over SMTP or the Resend HTTP API."""
from __future__ import annotations

import smtplib
from contextlib import contextmanager
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Iterable

import requests
from flask import current_app, render_template


@dataclass(frozen=True)
class EmailResult:
    ok: bool
    error: str | None = None


@contextmanager
def _smtp_connection():
    """Yield a configured SMTP connection based on application settings."""
    host = current_app.config.get("SMTP_HOST")
    port = int(current_app.config.get("SMTP_PORT", 587))
    username = current_app.config.get("SMTP_USER")
    password = current_app.config.get("SMTP_PASS")
    timeout = int(current_app.config.get("EMAIL_TIMEOUT_SECS", 15))
    use_ssl = bool(current_app.config.get("SMTP_USE_SSL"))
    use_tls = bool(current_app.config.get("SMTP_USE_TLS", True)) and not use_ssl

    if use_ssl:
        server: smtplib.SMTP | smtplib.SMTP_SSL = smtplib.SMTP_SSL(host, port, timeout=timeout)
    else:
        server = smtplib.SMTP(host, port, timeout=timeout)
    try:
        if use_tls:
            server.starttls()
        if username and password:
            server.login(username, password)
        yield server
    finally:
        try:
            server.quit()
        except (smtplib.SMTPException, OSError):
            current_app.logger.debug("SMTP quit failed", exc_info=True)


def _send_smtp(sender: str, recipients: list[str], subject: str, html: str, text: str) -> None:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    msg.set_content(text)
    msg.add_alternative(html, subtype="html")
    with _smtp_connection() as smtp:
        smtp.send_message(msg)


def _send_resend(sender: str, recipients: list[str], subject: str, html: str, text: str) -> None:
    api_key = current_app.config.get("RESEND_API_KEY")
    if not api_key:
        raise RuntimeError("RESEND_API_KEY is not configured")
    response = requests.post(
        current_app.config.get("RESEND_API_URL", "https://api.resend.com/emails"),
        headers={"Authorization": f"Bearer {api_key}"},
        json={"from": sender, "to": recipients, "subject": subject, "html": html, "text": text},
        timeout=int(current_app.config.get("EMAIL_TIMEOUT_SECS", 15)),
    )
    response.raise_for_status()


_BACKENDS = {"smtp": _send_smtp, "resend": _send_resend}


def send_email(
    *,
    subject: str,
    recipients: Iterable[str],
    html_template: str,
    text_template: str,
    context: dict[str, object] | None = None,
) -> EmailResult:
    """Render templates and deliver one message. Failures are returned, not raised."""
    context = context or {}
    recipients = list(recipients)
    sender = current_app.config.get("EMAIL_FROM")
    if not sender:
        raise RuntimeError("EMAIL_FROM is not configured")

    html = render_template(html_template, **context)
    text = render_template(text_template, **context)

    if current_app.config.get("MAIL_SUPPRESS_SEND"):
        current_app.extensions.setdefault("mail_outbox", []).append(
            {"subject": subject, "to": recipients, "html": html, "text": text, "context": context}
        )
        current_app.logger.info(
            "Email suppressed (MAIL_SUPPRESS_SEND=true)",
            extra={"component": "email", "context": {"subject": subject}},
        )
        return EmailResult(ok=True)

    backend_name = current_app.config.get("EMAIL_BACKEND", "smtp")
    backend = _BACKENDS.get(backend_name)
    if backend is None:
        raise RuntimeError(f"Unknown EMAIL_BACKEND: {backend_name}")
    try:
        backend(sender, recipients, subject, html, text)
    except (smtplib.SMTPException, OSError, requests.RequestException, RuntimeError) as exc:
        current_app.logger.error(
            "Email delivery failed",
            extra={"component": "email", "context": {"subject": subject, "backend": backend_name, "error": str(exc)}},
        )
        return EmailResult(ok=False, error=str(exc))

    current_app.logger.info(
        "Email dispatched",
        extra={"component": "email", "context": {"subject": subject, "backend": backend_name}},
    )
    return EmailResult(ok=True)
