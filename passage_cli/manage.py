"""Custom management commands exposed through Flask's CLI."""
from __future__ import annotations

from datetime import datetime

import click
from flask.cli import with_appcontext

from passage_auth.services import auth_services
from passage_ext.db import db
from passage_ext.errors import ConflictError, ValidationError
from passage_models.user import User


@click.group(help="Passage management commands")
def manage_cli() -> None:
    """Root Click group registered under `flask manage`."""


@manage_cli.command("create-db", help="Create database tables that do not exist yet")
@with_appcontext
def create_db() -> None:
    import passage_models  # noqa: F401

    db.create_all()
    click.echo("Database tables created.")


@manage_cli.command("create-user", help="Create a user with a password")
@click.option("--username", prompt=True, help="Login name")
@click.option("--name", prompt="Full name", help="Display name")
@click.option("--email", prompt=True, help="Email address")
@click.password_option("--password", help="Password")
@with_appcontext
def create_user(username: str, name: str, email: str, password: str) -> None:
    """Create an account without the email verification step."""
    try:
        user = auth_services().gateway.create_account(username, name, email, password)
    except (ValidationError, ConflictError) as exc:
        click.secho(str(exc), fg="red")
        raise SystemExit(1) from exc
    click.secho(f"User created with id {user.id}", fg="green")


@manage_cli.command("list-users", help="List registered users")
@with_appcontext
def list_users() -> None:
    users = db.session.scalars(db.select(User).order_by(User.created_at.desc())).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        click.echo(f"{user.id}: {user.username} <{user.email}> - {len(user.sessions)} session(s)")


@manage_cli.command("revoke-sessions", help="Log a user out everywhere")
@click.option("--username", required=True, help="Username whose sessions are removed")
@with_appcontext
def revoke_sessions(username: str) -> None:
    services = auth_services()
    user = services.store.find_user_by_username(username.strip().lower())
    if user is None:
        click.secho(f"No user named {username}", fg="red")
        raise SystemExit(1)
    removed = services.sessions.revoke_all(user.id)
    click.secho(f"Removed {removed} session(s) for {user.username}.", fg="green")


@manage_cli.command("prune", help="Delete expired sessions and verification codes")
@with_appcontext
def prune() -> None:
    services = auth_services()
    now = datetime.utcnow()
    sessions = services.sessions.prune(now)
    verifications = services.verifications.prune(now)
    click.secho(f"Pruned {sessions} session(s) and {verifications} verification(s).", fg="green")
