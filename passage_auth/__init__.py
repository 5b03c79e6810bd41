"""Authentication blueprint registration."""
from __future__ import annotations

from flask import Blueprint

auth_bp = Blueprint(
    "passage_auth",
    __name__,
    template_folder="../passage_web/templates",
)

from passage_auth import routes  # noqa: E402,F401
