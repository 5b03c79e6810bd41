"""SQLAlchemy and Flask-Migrate wiring for the credential database."""
from __future__ import annotations

from flask import Flask
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

# Unbound until the application factory configures them.
db = SQLAlchemy()
migrate = Migrate()


def init_app(app: Flask) -> None:
    """Bind SQLAlchemy and Flask-Migrate to the provided application."""
    db.init_app(app)
    migrate.init_app(app, db)


def ping() -> bool:
    """Return True when the database answers a trivial query."""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db.session.rollback()
        return False
    return True
