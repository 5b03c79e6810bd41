"""Structured logging for the auth flows.

Records name the ``component`` that emitted them (``auth``, ``sessions``,
``verification``, ``email``, ``http``, ``health``) and may carry a
``context`` mapping. Context keys listed in ``REDACT_KEYS`` are masked, so a
stray verification code or password never reaches the log stream.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping

from flask import Flask, current_app, g, has_request_context, request

SLOW_THRESHOLD_MS = 1000
MASK = "***"

PLAIN_FIELDS = ("component", "request_id", "route", "status", "latency_ms", "user_id")
# Attributes a caller may pass through ``extra`` to override request values.
RECORD_FIELDS = ("status", "latency_ms", "user_id")


class StructuredFormatter(logging.Formatter):
    """Render records as one JSON object per line, or as ``key=value`` text."""

    def __init__(self, as_json: bool = True, redact_keys: Iterable[str] = ()) -> None:
        super().__init__()
        self.as_json = as_json
        self.redact_keys = {key.lower() for key in redact_keys}

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        entry: Dict[str, Any] = {
            "ts": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "component": getattr(record, "component", "app"),
            "msg": record.getMessage(),
        }
        entry.update(_request_fields())
        for attr in RECORD_FIELDS:
            value = getattr(record, attr, None)
            if value is not None:
                entry[attr] = value
        context = self._masked_context(getattr(record, "context", None))
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry = {key: value for key, value in entry.items() if value is not None}

        if self.as_json:
            return json.dumps(entry, ensure_ascii=True, default=str)
        return self._plain(entry)

    def _masked_context(self, context: Any) -> Dict[str, Any]:
        if context is None:
            return {}
        if not isinstance(context, Mapping):
            context = {"value": context}
        return {
            str(key): MASK if str(key).lower() in self.redact_keys else value
            for key, value in context.items()
        }

    @staticmethod
    def _plain(entry: Dict[str, Any]) -> str:
        line = [f"[{entry['level']}]", entry["msg"].strip()]
        line.extend(f"{key}={entry[key]}" for key in PLAIN_FIELDS if key in entry)
        line.extend(f"{key}={value}" for key, value in entry.get("context", {}).items())
        if "exception" in entry:
            line.append("\n" + entry["exception"])
        return " ".join(line)


def _request_fields() -> Dict[str, Any]:
    if not has_request_context():
        return {}
    return {
        "request_id": getattr(g, "request_id", None),
        "route": request.path,
        "method": request.method,
        "ip": request.remote_addr,
        "ua": request.user_agent.string,
        # Set by the session resolver; reading current_user here would re-enter it.
        "user_id": getattr(g, "auth_user_id", None),
        "latency_ms": getattr(g, "request_latency_ms", None),
        "status": getattr(g, "response_status_code", None),
    }


def configure_logging(app: Flask) -> None:
    """Install the structured handler on ``app.logger``."""
    level = getattr(logging, app.config.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    app.logger.setLevel(level)

    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter(
            as_json=app.config.get("LOG_FORMAT", "json").lower() == "json",
            redact_keys=app.config.get("REDACT_KEYS", ()),
        )
    )
    app.logger.handlers.clear()
    app.logger.addHandler(handler)


def log_info(message: str, *, component: str = "app", context: Mapping[str, Any] | None = None, **fields: Any) -> None:
    current_app.logger.info(message, extra=dict(fields, component=component, context=context))


def log_warn(message: str, *, component: str = "app", context: Mapping[str, Any] | None = None, **fields: Any) -> None:
    current_app.logger.warning(message, extra=dict(fields, component=component, context=context))
