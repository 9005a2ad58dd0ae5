# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, the admin@gym.com admin user and default plans.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username frontdesk --email frontdesk@gym.com --password "Password123!" --role STAFF
#   Create a user (prompts if options are omitted).
#
# Maintenance:
# - python -m flask maintenance purge-activities --days 90
#   Delete activity feed rows older than the retention window.
# - python -m flask maintenance cleanup-sessions
#   Delete expired/revoked session tokens older than 30 days.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User, MembershipPlan
from .permissions import VALID_ROLES, ROLE_ADMIN
from .services.auth_service import create_user, PasswordValidationError
from .services import activity_service, session_service
from .validation import ValidationError, ConflictError
from .time_utils import utcnow


DEFAULT_ADMIN_EMAIL = "admin@gym.com"
DEFAULT_ADMIN_PASSWORD = "AdminPassword123!"

DEFAULT_PLANS = [
    ("Monthly Basic", "Monthly", 1, 5000, "Gym floor access for one month"),
    ("Quarterly Standard", "Quarterly", 3, 13500, "Gym floor and group classes for three months"),
    ("Annual Premium", "Yearly", 12, 120000, "Full access for twelve months"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the gym backend: tables, admin user and default plans.

    Creates:
    - All tables (no-op for tables that already exist)
    - Admin user admin@gym.com / AdminPassword123! (ADMIN role)
    - Plans: Monthly Basic, Quarterly Standard, Annual Premium

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing gym system...")

    db.create_all()
    click.echo("PASS Tables ready")

    click.echo("\nUSERS Creating admin user...")
    existing = db.session.query(User).filter_by(email=DEFAULT_ADMIN_EMAIL).first()
    if existing:
        click.echo(f"WARN  User '{DEFAULT_ADMIN_EMAIL}' already exists, skipping...")
    else:
        try:
            create_user(
                username="admin",
                email=DEFAULT_ADMIN_EMAIL,
                password=DEFAULT_ADMIN_PASSWORD,
                role=ROLE_ADMIN,
                first_name="Admin",
                last_name="User",
                created_by="System",
            )
            click.echo(f"PASS Created user: admin ({DEFAULT_ADMIN_EMAIL}) with role '{ROLE_ADMIN}'")
        except (ValidationError, ConflictError) as e:
            click.echo(f"FAIL Failed to create admin user: {str(e)}")

    click.echo("\nPLANS Creating default membership plans...")
    for name, plan_type, months, price_cents, description in DEFAULT_PLANS:
        if db.session.query(MembershipPlan).filter_by(plan_name=name).first():
            click.echo(f"WARN  Plan '{name}' already exists, skipping...")
            continue
        db.session.add(MembershipPlan(
            plan_name=name,
            plan_type=plan_type,
            duration_in_months=months,
            price_cents=price_cents,
            description=description,
            is_active=True,
            created_by="System",
            created_at=utcnow(),
        ))
        click.echo(f"PASS Created plan: {name} ({months} months, {price_cents / 100:,.2f})")
    db.session.commit()

    click.echo("\n" + "="*60)
    click.echo("DONE Gym System Initialized Successfully!")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   admin -> {DEFAULT_ADMIN_EMAIL} / {DEFAULT_ADMIN_PASSWORD}")
    click.echo("")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("This will delete ALL data. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset. Run 'python -m flask system init' to seed defaults.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(VALID_ROLES), case_sensitive=False), prompt=True, help='Role')
@click.option('--first-name', default=None, help='First name')
@click.option('--last-name', default=None, help='Last name')
@with_appcontext
def create_user_cli(username, email, password, role, first_name, last_name):
    """
    Create a new user interactively.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            first_name=first_name,
            last_name=last_name,
            created_by="CLI",
        )
        click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")

    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<35} {'Active':<8} {'Role'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<35} {active_str:<8} {user.role}")

    click.echo("="*90 + "\n")


@click.group('maintenance')
def maintenance_group():
    """Retention and cleanup commands."""


@maintenance_group.command('purge-activities')
@click.option('--days', type=int, default=None, help='Retention window in days (default ACTIVITY_RETENTION_DAYS)')
@with_appcontext
def purge_activities(days):
    """Delete activity rows older than the retention window."""
    days = days or current_app.config.get("ACTIVITY_RETENTION_DAYS", 90)
    try:
        deleted = activity_service.purge_older_than(days)
    except ValidationError as e:
        click.echo(f"FAIL {str(e)}")
        return
    click.echo(f"PASS Deleted {deleted} activities older than {days} days")


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired and revoked sessions older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} stale sessions")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
