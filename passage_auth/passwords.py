"""One-way password hashing backed by passlib."""
from __future__ import annotations

from flask import current_app, has_app_context
from passlib.context import CryptContext

# pbkdf2_sha256 is the default scheme. bcrypt stays verifiable for hashes
# imported from older deployments and is rehashed on the next login.
_password_context = CryptContext(
    schemes=["pbkdf2_sha256", "bcrypt"],
    default="pbkdf2_sha256",
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return _password_context.hash(password)


def verify_password(password: str, stored_hash: str | None) -> bool:
    """Compare a candidate against a stored hash; unknown or broken hashes never match."""
    if not stored_hash:
        return False
    try:
        return _password_context.verify(password, stored_hash)
    except (ValueError, TypeError):
        if has_app_context():
            current_app.logger.warning("Stored password hash could not be parsed")
        return False


def needs_rehash(stored_hash: str) -> bool:
    return _password_context.needs_update(stored_hash)
