"""Database-backed login sessions referenced by the signed session cookie."""
from __future__ import annotations

import secrets
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from passage_ext.db import db

if TYPE_CHECKING:  # pragma: no cover - used for type hints only
    from passage_models.user import User


def _new_session_id() -> str:
    return secrets.token_urlsafe(32)


class AuthSession(db.Model):
    """Tracks user login sessions with metadata."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_session_id)
    user_id: Mapped[str] = mapped_column(db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expiration_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index("ix_sessions_expiration_date", "expiration_date"),
    )

    def is_live(self, now: datetime) -> bool:
        return self.expiration_date > now
