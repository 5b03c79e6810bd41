"""Web blueprint for the private home page and health checks."""
from __future__ import annotations

from flask import Blueprint

web_bp = Blueprint(
    "passage_web",
    __name__,
    template_folder="templates",
)

# Import views after blueprint creation to avoid circular imports.
from passage_web import routes  # noqa: E402,F401
