# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/quotemaster/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@quotemaster.local]
#   Idempotent bootstrap: creates tables and a default admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List users with role and entitlement fields.
# - python -m flask users create --email a@b.com --password "Password123!" --role user
#   Create a user (prompts if options are omitted).
# - python -m flask users set-role a@b.com banned
#   Change a user's role; banning or deleting revokes their sessions.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions
#   Delete expired/revoked sessions older than 30 days.

import click
from flask.cli import with_appcontext

from .extensions import db
from .identity import Role
from .models import User
from .services import auth_service, session_service
from .services.auth_service import PasswordValidationError


DEFAULT_ADMIN_EMAIL = "admin@quotemaster.local"
DEFAULT_ADMIN_PASSWORD = "Password123!"

ROLE_CHOICES = [r.value for r in Role]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default=DEFAULT_ADMIN_EMAIL, show_default=True, help='Admin account email')
@click.option('--admin-password', default=DEFAULT_ADMIN_PASSWORD, help='Admin account password')
@with_appcontext
def init_system(admin_email, admin_password):
    """Create tables and the default admin account. Safe to re-run."""
    click.echo("START Initializing QuoteMaster...")
    db.create_all()

    existing = db.session.query(User).filter_by(email=auth_service.normalize_email(admin_email)).first()
    if existing:
        click.echo(f"WARN  User '{existing.email}' already exists, skipping...")
    else:
        try:
            user = auth_service.register_user(admin_email, admin_password, role=Role.ADMIN)
            click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")
        except (PasswordValidationError, ValueError) as e:
            click.echo(f"FAIL Could not create admin '{admin_email}': {e}")
            return

    click.echo("DONE QuoteMaster initialized.")
    if admin_password == DEFAULT_ADMIN_PASSWORD:
        click.echo("WARN  Default admin password in use. Change it before going live!")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and entitlement fields."""
    users = auth_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<9} {'Free used':<10} {'Subscribed'}")
    click.echo("="*90)

    for user in users:
        subscribed = "Yes" if user.has_active_subscription else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {user.role:<9} {user.free_downloads_used:<10} {subscribed}")

    click.echo("="*90 + "\n")


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['user', 'admin']), default='user', show_default=True)
@click.option('--first-name', default=None)
@click.option('--last-name', default=None)
@with_appcontext
def create_user_cli(email, password, role, first_name, last_name):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = auth_service.register_user(
            email,
            password,
            first_name=first_name,
            last_name=last_name,
            role=Role.parse(role),
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")


@users_group.command('set-role')
@click.argument('email')
@click.argument('role', type=click.Choice(ROLE_CHOICES))
@with_appcontext
def set_role_cli(email, role):
    """Change a user's role."""
    user = db.session.query(User).filter_by(email=auth_service.normalize_email(email)).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return

    user = auth_service.set_role(user.id, Role.parse(role))
    click.echo(f"PASS {user.email} is now '{user.role}'")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete expired or revoked sessions older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"Deleted {deleted} old sessions.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
