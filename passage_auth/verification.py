"""Verification registry: one outstanding one-time code per target and purpose."""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable
from urllib.parse import urlencode

from passage_auth.store import CredentialStore
from passage_auth.totp import OtpPolicy, generate_totp, verify_totp
from passage_models.verification import VERIFICATION_TYPES, Verification


@dataclass(frozen=True)
class IssuedVerification:
    """Code for the email plus the links that lead back to the verify page."""

    otp: str
    verify_url: str
    redirect_to: str


def _unix(moment: datetime) -> int:
    return calendar.timegm(moment.utctimetuple())


class VerificationRegistry:
    """Issue, check and redeem codes stored in the ``verifications`` table.

    Issuing replaces whatever challenge the pair had before, so only the
    newest code works. Redemption deletes the row conditionally on the secret
    that was checked, which makes concurrent submissions of one code succeed
    at most once.
    """

    def __init__(
        self,
        store: CredentialStore,
        policy: OtpPolicy | None = None,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.store = store
        self.policy = policy or OtpPolicy()
        self.clock = clock

    def issue(
        self,
        target: str,
        type_: str,
        period: int,
        *,
        origin: str,
        redirect_to: str | None = None,
    ) -> IssuedVerification:
        _check_type(type_)
        now = self.clock()
        generated = generate_totp(
            period=period,
            algorithm=self.policy.algorithm,
            digits=self.policy.digits,
            char_set=self.policy.char_set,
            min_entropy_bits=self.policy.min_entropy_bits,
            for_time=_unix(now),
        )
        self.store.upsert_verification(
            target=target,
            type_=type_,
            secret=generated.secret,
            algorithm=generated.algorithm,
            period=generated.period,
            digits=generated.digits,
            char_set=generated.char_set,
            expires_at=now + timedelta(seconds=period),
        )

        params = [("type", type_), ("target", target)]
        if redirect_to:
            params.append(("redirectTo", redirect_to))
        base = f"{origin.rstrip('/')}/verify"
        without_code = f"{base}?{urlencode(params)}"
        with_code = f"{base}?{urlencode(params + [('code', generated.otp)])}"
        return IssuedVerification(otp=generated.otp, verify_url=with_code, redirect_to=without_code)

    def is_valid(self, target: str, type_: str, code: str) -> bool:
        """Check ``code`` without redeeming it."""
        now = self.clock()
        record = self._live_record(target, type_, now)
        return record is not None and self._matches(record, code, now)

    def consume(self, target: str, type_: str, code: str) -> bool:
        """Redeem ``code``; True only for the single caller that removed the row."""
        now = self.clock()
        record = self._live_record(target, type_, now)
        if record is None or not self._matches(record, code, now):
            return False
        removed = self.store.delete_verification(target, type_, expected_secret=record.secret)
        return removed == 1

    def prune(self, now: datetime | None = None) -> int:
        return self.store.delete_expired_verifications(now or self.clock())

    def _live_record(self, target: str, type_: str, now: datetime) -> Verification | None:
        if type_ not in VERIFICATION_TYPES:
            return None
        record = self.store.find_verification(target, type_)
        if record is None or record.is_expired(now):
            return None
        return record

    @staticmethod
    def _matches(record: Verification, code: str, now: datetime) -> bool:
        return verify_totp(
            (code or "").strip(),
            secret=record.secret,
            algorithm=record.algorithm,
            period=record.period,
            digits=record.digits,
            char_set=record.char_set,
            for_time=_unix(now),
        )


def _check_type(type_: str) -> None:
    if type_ not in VERIFICATION_TYPES:
        raise ValueError(f"Unknown verification type: {type_}")
