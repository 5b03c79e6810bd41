"""Signed cookie containers for the session id and pending verification flows."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict

from flask import Response
from itsdangerous import BadSignature, URLSafeTimedSerializer

SESSION_ID_KEY = "session_id"
ONBOARDING_EMAIL_KEY = "onboarding_email"
RESET_IDENTIFIER_KEY = "reset_identifier"


@dataclass(frozen=True)
class CookieSpec:
    """Name, signing salt and hard age limit of one cookie."""

    name: str
    salt: str
    max_age: int | None = None


@dataclass(frozen=True)
class CookieDirective:
    """Instruction to set or clear one cookie on the outgoing response."""

    name: str
    value: str | None
    secure: bool = False
    expires: datetime | None = None
    max_age: int | None = None

    @property
    def clears(self) -> bool:
        return self.value is None

    def apply(self, response: Response) -> Response:
        if self.value is None:
            response.delete_cookie(self.name, path="/", secure=self.secure, httponly=True, samesite="Lax")
        else:
            response.set_cookie(
                self.name,
                self.value,
                max_age=self.max_age,
                expires=self.expires,
                path="/",
                secure=self.secure,
                httponly=True,
                samesite="Lax",
            )
        return response


class CookieCodec:
    """Sign, read and clear cookie payloads with itsdangerous."""

    def __init__(self, secret_key: str, *, secure: bool = False) -> None:
        self.secret_key = secret_key
        self.secure = secure

    def _serializer(self, spec: CookieSpec) -> URLSafeTimedSerializer:
        return URLSafeTimedSerializer(self.secret_key, salt=spec.salt)

    def read(self, spec: CookieSpec, raw: str | None) -> Dict[str, Any] | None:
        """Return the payload, ``{}`` for no cookie, or ``None`` when the cookie is forged or too old."""
        if not raw:
            return {}
        try:
            payload = self._serializer(spec).loads(raw, max_age=spec.max_age)
        except BadSignature:
            # SignatureExpired is a BadSignature too.
            return None
        return payload if isinstance(payload, dict) else None

    def commit(self, spec: CookieSpec, payload: Dict[str, Any], *, expires: datetime | None = None) -> CookieDirective:
        value = self._serializer(spec).dumps(payload)
        return CookieDirective(
            name=spec.name,
            value=value,
            secure=self.secure,
            expires=expires,
            max_age=spec.max_age,
        )

    def destroy(self, spec: CookieSpec) -> CookieDirective:
        return CookieDirective(name=spec.name, value=None, secure=self.secure)
