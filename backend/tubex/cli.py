# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/tubex/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
#
# Company management (MULTI-TENANT):
# - python -m flask companies list
#   List all companies.
# - python -m flask companies create --name "Acme Supply" --type supplier --active
#   Create a new company (tenant).
#
# Users:
# - python -m flask users create --company-id 1 --email admin@acme.test --password "Password123!" --role admin
#   Create a user (prompts if options are omitted).
# - python -m flask users deactivate --user-id 3
#   Deactivate a user and revoke all of their sessions.
#
# Integrity:
# - python -m flask integrity check --company-id 1
#   Run the comprehensive integrity scan for one company. Exit code 1 on errors.
#
# Ledger:
# - python -m flask ledger reorders [--company-id 1] [--ack]
#   List pending reorder events; --ack marks them consumed.
#
# Security:
# - python -m flask security events --company-id 1 [--event-type CROSS_TENANT_ACCESS_DENIED]
#   Show recent security events for a company.
#
# Maintenance:
# - python -m flask maintenance cleanup-security-events --retention-days 90
#   Delete security events older than the retention window.
# - python -m flask maintenance retire-expired-batches --company-id 1
#   Mark active batches past their expiry date as expired.

import json
import sys

import click
from flask.cli import with_appcontext

from .errors import ValidationError
from .extensions import db
from .models import Company, User
from .models.auth import USER_ROLES
from .models.tenancy import COMPANY_STATUSES, COMPANY_TYPES
from .services import inventory_service, ledger_service, security_service, session_service
from .services.auth_service import PasswordValidationError, create_user
from .services.integrity_service import run_comprehensive_integrity_check
from .services.store import Repositories


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables. Idempotent: existing tables are left alone."""
    db.create_all()
    click.echo("PASS Database tables created")


@click.group('companies')
def companies_group():
    """Company (tenant) management commands."""


@companies_group.command('list')
@with_appcontext
def list_companies():
    companies = db.session.query(Company).order_by(Company.id).all()
    if not companies:
        click.echo("No companies found")
        return
    for company in companies:
        click.echo(f"{company.id:>5}  {company.type:<9} {company.status:<21} {company.name}")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--type', 'company_type', type=click.Choice(COMPANY_TYPES), required=True, help='Company type')
@click.option('--status', type=click.Choice(COMPANY_STATUSES), default='pending_verification', help='Initial status')
@click.option('--active', is_flag=True, help="Shortcut for --status active")
@with_appcontext
def create_company_cli(name, company_type, status, active):
    company = Company(name=name, type=company_type, status='active' if active else status)
    db.session.add(company)
    db.session.commit()
    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, {company.type}, {company.status})")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(USER_ROLES), prompt=True, help='Role')
@with_appcontext
def create_user_cli(company_id, email, password, role):
    """
    Create a user in a company.

    Password must be 8+ chars with uppercase, lowercase, digit and special char.
    """
    try:
        user = create_user(email=email, password=password, company_id=company_id, role=role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        sys.exit(1)
    except ValidationError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")
        sys.exit(1)

    click.echo(f"PASS Created user: {user.email} with role '{user.role}' in company {user.company_id}")


@users_group.command('deactivate')
@click.option('--user-id', type=int, required=True, help='User ID')
@with_appcontext
def deactivate_user_cli(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        click.echo(f"FAIL User ID {user_id} not found")
        sys.exit(1)
    user.is_active = False
    db.session.commit()
    revoked = session_service.revoke_all_user_sessions(user_id, reason="User deactivated")
    click.echo(f"PASS Deactivated {user.email}; revoked {revoked} session(s)")


@click.group('integrity')
def integrity_group():
    """Data integrity commands."""


@integrity_group.command('check')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def integrity_check_cli(company_id):
    report = run_comprehensive_integrity_check(Repositories.for_session(), company_id)
    click.echo(json.dumps(report, indent=2))
    if not report["is_valid"]:
        sys.exit(1)


@click.group('ledger')
def ledger_group():
    """Domain event ledger commands."""


@ledger_group.command('reorders')
@click.option('--company-id', type=int, help='Limit to one company')
@click.option('--limit', type=int, default=100, show_default=True)
@click.option('--ack', is_flag=True, help='Mark the listed events consumed')
@with_appcontext
def pending_reorders_cli(company_id, limit, ack):
    events = ledger_service.list_unconsumed_events(
        ledger_service.REORDER_TRIGGERED, company_id=company_id, limit=limit
    )
    for event in events:
        click.echo(json.dumps(event.to_dict()))
    if ack and events:
        count = ledger_service.mark_events_consumed([e.id for e in events])
        click.echo(f"PASS Marked {count} event(s) consumed")


@click.group('security')
def security_group():
    """Security audit inspection commands."""


@security_group.command('events')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--event-type', help='Filter by event type')
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def security_events_cli(company_id, event_type, limit):
    for event in security_service.list_company_events(company_id, event_type=event_type, limit=limit):
        click.echo(json.dumps(event.to_dict()))


@click.group('maintenance')
def maintenance_group():
    """Operational maintenance commands."""


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    deleted = security_service.cleanup_security_events(retention_days)
    click.echo(f"PASS Deleted {deleted} security event(s) older than {retention_days} days")


@maintenance_group.command('retire-expired-batches')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def retire_expired_batches_cli(company_id):
    retired = inventory_service.retire_expired_batches(company_id)
    click.echo(f"PASS Marked {retired} batch(es) expired")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)
    app.cli.add_command(users_group)
    app.cli.add_command(integrity_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(security_group)
    app.cli.add_command(maintenance_group)
