"""Password hash storage, one row per user."""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from passage_ext.db import db

if TYPE_CHECKING:  # pragma: no cover - used for type hints only
    from passage_models.user import User


class Password(db.Model):
    """One-way hash owned by exactly one user. Plaintext never reaches this table."""

    __tablename__ = "passwords"

    user_id: Mapped[str] = mapped_column(db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    hash: Mapped[str] = mapped_column(String(255), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="password")
