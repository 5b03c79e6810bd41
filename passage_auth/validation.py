"""Input rules shared by the forms and the auth gateway."""
from __future__ import annotations

import re

from email_validator import EmailNotValidError, validate_email

from passage_ext.errors import ValidationError

USERNAME_MIN = 3
USERNAME_MAX = 20
PASSWORD_MIN = 6
PASSWORD_MAX = 20
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def normalize_username(raw: str | None) -> str:
    username = (raw or "").strip()
    if not USERNAME_MIN <= len(username) <= USERNAME_MAX:
        raise ValidationError(
            user_msg=f"Username must be between {USERNAME_MIN} and {USERNAME_MAX} characters.",
            field="username",
        )
    if not USERNAME_PATTERN.match(username):
        raise ValidationError(
            user_msg="Username can only include letters, numbers, and underscores.",
            field="username",
        )
    return username.lower()


def normalize_email(raw: str | None) -> str:
    try:
        result = validate_email((raw or "").strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(user_msg="Enter a valid email address.", field="email", detail=str(exc)) from exc
    return result.normalized.lower()


def validate_password(password: str | None) -> str:
    password = password or ""
    if not PASSWORD_MIN <= len(password) <= PASSWORD_MAX:
        raise ValidationError(
            user_msg=f"Password must be between {PASSWORD_MIN} and {PASSWORD_MAX} characters.",
            field="password",
        )
    return password


def validate_name(raw: str | None) -> str:
    name = (raw or "").strip()
    if not name:
        raise ValidationError(user_msg="Name is required.", field="name")
    if len(name) > 120:
        raise ValidationError(user_msg="Name is too long.", field="name")
    return name
