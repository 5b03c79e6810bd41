"""Audit trail for account events: signups, logins, resets and code use."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from flask import g, has_request_context, request
from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from passage_ext.db import db

Scalar = (str, int, float, bool)


def _scalars(data: dict[str, Any]) -> dict[str, Any]:
    """Audit payloads are flat; anything that is not a JSON scalar is stringified."""
    return {key: value if value is None or isinstance(value, Scalar) else str(value) for key, value in data.items()}


def _request_origin() -> dict[str, Any]:
    if not has_request_context():
        return {}
    return {
        "request_id": getattr(g, "request_id", None),
        "actor_ip": request.remote_addr,
        "actor_ua": (request.user_agent.string or "")[:255] or None,
        "route": request.path,
        "http_method": request.method,
    }


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    data: Mapped[dict[str, Any] | None] = mapped_column(db.JSON, nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    actor_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    actor_ua: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    route: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    http_method: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_audit_logs_user_action", "user_id", "action"),
        Index("ix_audit_logs_created_at", "created_at"),
    )

    @classmethod
    def log(
        cls,
        action: str,
        entity: str,
        entity_id: str | None,
        data: dict[str, Any] | None = None,
        *,
        user_id: str | None = None,
    ) -> "AuditLog":
        """Record ``action`` on ``entity``; the acting user defaults to the resolved session's."""
        if user_id is None and has_request_context():
            user_id = getattr(g, "auth_user_id", None)
        record = cls(
            user_id=user_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            data=_scalars(data) if data else None,
            **_request_origin(),
        )
        db.session.add(record)
        db.session.commit()
        return record
