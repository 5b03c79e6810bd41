"""Time-based one-time codes bound to a secret, period, algorithm and charset."""
from __future__ import annotations

import hashlib
import hmac
import math
import struct
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

import pyotp

DEFAULT_ALGORITHM = "SHA256"
DEFAULT_DIGITS = 6
DEFAULT_CHARSET = "0123456789"
DEFAULT_MIN_ENTROPY_BITS = 19.9
# Codes from the previous and the next window are accepted.
SKEW_WINDOWS = 1

_DIGESTS: dict[str, Callable[..., Any]] = {
    "SHA1": hashlib.sha1,
    "SHA256": hashlib.sha256,
    "SHA512": hashlib.sha512,
}


@dataclass(frozen=True)
class GeneratedOtp:
    """A fresh code plus the configuration needed to verify it later."""

    otp: str
    secret: str
    algorithm: str
    period: int
    digits: int
    char_set: str


@dataclass(frozen=True)
class OtpPolicy:
    """Minimum strength every issued code must meet."""

    algorithm: str = DEFAULT_ALGORITHM
    digits: int = DEFAULT_DIGITS
    char_set: str = DEFAULT_CHARSET
    min_entropy_bits: float = DEFAULT_MIN_ENTROPY_BITS

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "OtpPolicy":
        policy = cls(
            algorithm=str(config.get("OTP_ALGORITHM", DEFAULT_ALGORITHM)).upper(),
            digits=int(config.get("OTP_DIGITS", DEFAULT_DIGITS)),
            char_set=str(config.get("OTP_CHARSET", DEFAULT_CHARSET)),
            min_entropy_bits=float(config.get("OTP_MIN_ENTROPY_BITS", DEFAULT_MIN_ENTROPY_BITS)),
        )
        policy.validate()
        return policy

    @property
    def entropy_bits(self) -> float:
        return code_entropy_bits(self.digits, self.char_set)

    def validate(self) -> None:
        enforce_code_policy(self.algorithm, self.digits, self.char_set, self.min_entropy_bits)


class CharsetTOTP(pyotp.TOTP):
    """TOTP whose truncated HOTP value is spelled out in an arbitrary alphabet.

    With the decimal alphabet this yields exactly the RFC 6238 code.
    """

    def __init__(self, secret: str, *, char_set: str, **kwargs: Any) -> None:
        self.char_set = char_set
        super().__init__(secret, **kwargs)

    def generate_otp(self, input: int) -> str:  # noqa: A002 - mirrors pyotp signature
        if input < 0:
            raise ValueError("input must be positive integer")
        mac = hmac.new(self.byte_secret(), struct.pack(">Q", input), self.digest).digest()
        offset = mac[-1] & 0x0F
        value = struct.unpack(">I", mac[offset : offset + 4])[0] & 0x7FFFFFFF
        base = len(self.char_set)
        chars = []
        for _ in range(self.digits):
            value, index = divmod(value, base)
            chars.append(self.char_set[index])
        return "".join(reversed(chars))


def code_entropy_bits(digits: int, char_set: str) -> float:
    return digits * math.log2(max(len(set(char_set)), 1))


def enforce_code_policy(algorithm: str, digits: int, char_set: str, min_entropy_bits: float = DEFAULT_MIN_ENTROPY_BITS) -> None:
    """Raise ValueError for configurations too weak or malformed to issue."""
    _digest_for(algorithm)
    if not 6 <= digits <= 10:
        raise ValueError(f"OTP digits must be between 6 and 10, got {digits}")
    if len(set(char_set)) != len(char_set):
        raise ValueError("OTP charset must not repeat characters")
    if len(char_set) < 10:
        raise ValueError("OTP charset must contain at least 10 characters")
    bits = code_entropy_bits(digits, char_set)
    if bits < min_entropy_bits:
        raise ValueError(f"OTP configuration yields {bits:.1f} bits, below the {min_entropy_bits:.1f} bit minimum")


def generate_totp(
    *,
    period: int,
    algorithm: str = DEFAULT_ALGORITHM,
    digits: int = DEFAULT_DIGITS,
    char_set: str = DEFAULT_CHARSET,
    min_entropy_bits: float = DEFAULT_MIN_ENTROPY_BITS,
    for_time: float | None = None,
) -> GeneratedOtp:
    """Create a random secret and the code valid for the current window."""
    algorithm = algorithm.upper()
    enforce_code_policy(algorithm, digits, char_set, min_entropy_bits)
    if period <= 0:
        raise ValueError("OTP period must be positive")
    secret = pyotp.random_base32()
    totp = _build(secret, algorithm=algorithm, period=period, digits=digits, char_set=char_set)
    otp = totp.at(_as_datetime(for_time))
    return GeneratedOtp(otp=otp, secret=secret, algorithm=algorithm, period=period, digits=digits, char_set=char_set)


def verify_totp(
    otp: str,
    *,
    secret: str,
    algorithm: str,
    period: int,
    digits: int = DEFAULT_DIGITS,
    char_set: str = DEFAULT_CHARSET,
    for_time: float | None = None,
) -> bool:
    """Return True when ``otp`` matches the current window or one neighbour."""
    totp = _build(secret, algorithm=algorithm.upper(), period=period, digits=digits, char_set=char_set)
    # Decode up front so a corrupt secret fails loudly instead of never matching.
    totp.byte_secret()
    if not otp or len(otp) != digits:
        return False
    return totp.verify(otp, for_time=_as_datetime(for_time), valid_window=SKEW_WINDOWS)


def _build(secret: str, *, algorithm: str, period: int, digits: int, char_set: str) -> CharsetTOTP:
    return CharsetTOTP(secret, char_set=char_set, digits=digits, digest=_digest_for(algorithm), interval=period)


def _digest_for(algorithm: str) -> Callable[..., Any]:
    try:
        return _DIGESTS[algorithm.upper()]
    except KeyError:
        raise ValueError(f"Unsupported OTP algorithm: {algorithm}") from None


def _as_datetime(for_time: float | None) -> datetime:
    timestamp = time.time() if for_time is None else for_time
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)
