# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/aromalab/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default administrator.
# - python -m flask system seed
#   Load the sample raw materials (only when no material exists yet).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --email lab@aromalab.com --name "Lab" --password "secret1" --role user
#   Create a user (prompts if options are omitted).
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired or revoked sessions older than the retention window.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import RawMaterial, User, USER_ROLES
from .services.auth_service import create_user, ensure_default_admin, PasswordValidationError
from .services import material_service, session_service


SAMPLE_MATERIALS = [
    {"designation": "Vanilline", "cas": "121-33-5", "supplier": "Givaudan", "stock": 250.0, "price": 45.5},
    {"designation": "Éthyl Maltol", "cas": "4940-11-8", "supplier": "Symrise", "stock": 180.0, "price": 62.0},
    {"designation": "Menthol", "cas": "2216-51-5", "supplier": "Firmenich", "stock": 320.0, "price": 38.75},
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize AromaLab: create the schema and the default administrator.

    The administrator is only created when the users table is empty, using
    DEFAULT_ADMIN_EMAIL / DEFAULT_ADMIN_PASSWORD.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing AromaLab...")

    db.create_all()
    click.echo("PASS Schema ready")

    admin = ensure_default_admin()
    if admin:
        click.echo(f"PASS Created default administrator: {admin.email}")
    else:
        click.echo("PASS Users already exist, default administrator not created")

    click.echo("\nDONE AromaLab initialized.")


@system_group.command('seed')
@with_appcontext
def seed_materials():
    """Load the sample raw materials into an empty catalogue."""
    if db.session.query(RawMaterial).count() > 0:
        click.echo("SKIP Materials already exist, nothing seeded")
        return

    for data in SAMPLE_MATERIALS:
        material = material_service.add_material(data)
        click.echo(f"PASS MP{material.code} {material.designation} ({material.stock:.2f} kg)")


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


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), default='user', show_default=True, help='Role')
@with_appcontext
def create_user_cli(email, name, password, role):
    """Create a new user (password of at least 6 characters)."""
    try:
        user = create_user(email=email, password=password, name=name, role=role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<25} {'Role':<8} {'Active'}")
    click.echo("="*90)

    for user in users:
        active = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {user.name:<25} {user.role:<8} {active}")

    click.echo("="*90 + "\n")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete expired or revoked sessions older than the retention window."""
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    current_app.logger.info("Session cleanup removed %s rows", deleted)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
