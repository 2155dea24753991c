# Overview: Flask CLI command groups for bootstrap and user administration.

# backend/dlvery/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and enabled status.
# - python -m flask users create --username admin --email admin@dlvery.local --password "secret1" --role ADMIN
#   Create a user (prompts if options are omitted). This is the only way to
#   create the first ADMIN account.

import click
from flask.cli import with_appcontext

from .errors import ApiError
from .extensions import db
from .models import User
from .permissions import ROLE_DEFINITIONS
from .services.auth_service import create_user
from .validation import PASSWORD_MIN_LENGTH


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask users create' to add an admin.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option(
    '--role',
    type=click.Choice([code for code, _ in ROLE_DEFINITIONS], case_sensitive=False),
    prompt=True,
    help='Role',
)
@click.option('--full-name', default=None, help='Full name')
@with_appcontext
def create_user_cli(username, email, password, role, full_name):
    """Create a new user. Any role may be chosen here, including ADMIN."""
    if len(password) < PASSWORD_MIN_LENGTH:
        raise click.ClickException(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")

    try:
        user = create_user(
            username=username.strip(),
            email=email.strip().lower(),
            password=password,
            role=role.upper(),
            full_name=full_name,
        )
    except ApiError as e:
        db.session.rollback()
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user '{user.username}' (id={user.id}, role={user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<25} {'Email':<35} {'Role':<10} {'Enabled'}")
    click.echo("="*90)

    for user in users:
        enabled_str = "Yes" if user.enabled else "No"
        click.echo(f"{user.id:<5} {user.username:<25} {user.email:<35} {user.role:<10} {enabled_str}")

    click.echo("="*90 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
