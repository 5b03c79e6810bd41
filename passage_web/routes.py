"""Routes for the authenticated home page and liveness probe."""
from __future__ import annotations

from datetime import datetime

from flask import Response, current_app, jsonify, render_template
from flask_login import current_user

from passage_ext.auth import require_user
from passage_ext.db import ping
from passage_web import web_bp


@web_bp.route("/")
@require_user
def index() -> str:
    """Private home page showing who is signed in."""
    return render_template("index.html", user=current_user)


@web_bp.route("/healthz")
def healthz() -> Response:
    """Expose a simple health-check endpoint for orchestration systems."""
    db_ok = ping()
    if not db_ok:
        current_app.logger.error("Database health check failed", extra={"component": "health"})
    payload = {
        "app": current_app.config.get("APP_NAME", "Passage"),
        "version": current_app.config.get("VERSION", "unknown"),
        "database": db_ok,
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }
    response = jsonify(payload)
    response.status_code = 200 if db_ok else 503
    return response
