"""SQLAlchemy models exposed as a cohesive package."""
from __future__ import annotations

from passage_models.audit import AuditLog
from passage_models.password import Password
from passage_models.session import AuthSession
from passage_models.user import User
from passage_models.verification import VERIFICATION_TYPES, Verification

__all__ = [
    "AuditLog",
    "AuthSession",
    "Password",
    "User",
    "VERIFICATION_TYPES",
    "Verification",
]
