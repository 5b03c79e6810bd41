"""Pending one-time-code challenges, one per target and purpose."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from passage_ext.db import db

VERIFICATION_TYPES = ("onboarding", "reset-password")


class Verification(db.Model):
    """TOTP configuration for the outstanding challenge of a ``(target, type)`` pair."""

    __tablename__ = "verifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    target: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    secret: Mapped[str] = mapped_column(String(128), nullable=False)
    algorithm: Mapped[str] = mapped_column(String(16), nullable=False)
    period: Mapped[int] = mapped_column(Integer, nullable=False)
    digits: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    char_set: Mapped[str] = mapped_column(String(128), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("target", "type", name="uq_verifications_target_type"),
    )

    def is_expired(self, now: datetime) -> bool:
        """A null expiry never lapses."""
        return self.expires_at is not None and self.expires_at <= now
