"""User model and related helpers."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from flask_login import UserMixin
from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from passage_ext.db import db

if TYPE_CHECKING:  # pragma: no cover - used for type hints only
    from passage_models.password import Password
    from passage_models.session import AuthSession


def _new_id() -> str:
    return uuid.uuid4().hex


class User(UserMixin, db.Model):
    """Application user persisted in the database."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    username: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    password: Mapped[Optional["Password"]] = relationship(
        "Password",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )
    sessions: Mapped[list["AuthSession"]] = relationship(
        "AuthSession",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="AuthSession.created_at.desc()",
    )

    def get_id(self) -> str:  # type: ignore[override]
        return self.id

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<User {self.username}>"
