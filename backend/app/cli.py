# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Database bootstrap:
# - python -m flask db-admin init
#   Create all tables (idempotent). Use `flask db upgrade` for migrated deployments.
# - python -m flask db-admin reset --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Business management (MULTI-TENANT):
# - python -m flask businesses list
# - python -m flask businesses create --name "Cafe Uno" --code "CAFE1" --tax-rate-bps 1100
#
# Reservations:
# - python -m flask reservations sweep
#   Delete expired stock reservations. Schedule every few minutes (cron).
# - python -m flask reservations list --sale-id 42
#   Show reservations held by a sale.
#
# Shifts:
# - python -m flask shifts open --business-id 1 --user-id 7 --start-cash-cents 50000
# - python -m flask shifts close --business-id 1 --shift-id 3 --end-cash-cents 81250

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Business
from .services import reservation_service, shift_service
from .services.concurrency import run_with_retry
from .errors import SaleEngineError
from .time_utils import to_utc_z, utcnow


@click.group('db-admin')
def db_admin_group():
    """Database bootstrap commands."""


@db_admin_group.command('init')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@db_admin_group.command('reset')
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

    click.echo("PASS Database reset complete.")


@click.group('businesses')
def businesses_group():
    """Business (tenant) management commands."""


@businesses_group.command('list')
@with_appcontext
def list_businesses():
    """List all businesses."""
    businesses = db.session.query(Business).order_by(Business.id.asc()).all()

    if not businesses:
        click.echo("No businesses found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Tax bps':<8} {'Active'}")
    click.echo("="*80)

    for business in businesses:
        active_str = "Yes" if business.is_active else "No"
        click.echo(
            f"{business.id:<5} {business.name:<30} {business.code or '-':<15} "
            f"{business.tax_rate_bps:<8} {active_str}"
        )

    click.echo("="*80 + "\n")


@businesses_group.command('create')
@click.option('--name', required=True, help='Business name')
@click.option('--code', required=True, help='Unique business code')
@click.option('--tenant-id', default=None, help='Tenant identifier')
@click.option('--tax-rate-bps', type=int, default=0, show_default=True, help='Flat tax rate in basis points')
@with_appcontext
def create_business(name, code, tenant_id, tax_rate_bps):
    """Create a new business."""
    if db.session.query(Business).filter_by(code=code).first():
        click.echo(f"FAIL Business code '{code}' already exists.")
        return

    business = Business(name=name, code=code, tenant_id=tenant_id, tax_rate_bps=tax_rate_bps, is_active=True)
    db.session.add(business)
    db.session.commit()
    click.echo(f"PASS Created business: {business.name} (ID: {business.id}, Code: {business.code})")


@click.group('reservations')
def reservations_group():
    """Stock reservation maintenance."""


@reservations_group.command('sweep')
@click.option('--attempts', type=int, default=3, show_default=True, help='Retries on lock contention')
@with_appcontext
def sweep_reservations(attempts):
    """
    Delete reservations whose expire_at has passed.

    Safe to run while cashiers are working: it only deletes rows that no
    availability check counts anymore.
    """
    deleted = run_with_retry(reservation_service.clean_expired_reservations, attempts=attempts)
    click.echo(f"Deleted {deleted} expired reservations.")


@reservations_group.command('list')
@click.option('--sale-id', type=int, required=True)
@with_appcontext
def list_reservations(sale_id):
    """Show reservations held by a sale."""
    reservations = reservation_service.get_reservations_by_sale(sale_id)
    if not reservations:
        click.echo(f"No reservations for sale {sale_id}.")
        return

    now = utcnow()
    for r in reservations:
        state = "active" if r.expire_at > now else "expired"
        click.echo(
            f"  product={r.product_id:<6} qty={r.quantity:<5} "
            f"expires={to_utc_z(r.expire_at)} ({state})"
        )


@click.group('shifts')
def shifts_group():
    """Cashier shift commands."""


@shifts_group.command('open')
@click.option('--business-id', type=int, required=True)
@click.option('--user-id', type=int, required=True)
@click.option('--start-cash-cents', type=int, default=0, show_default=True)
@with_appcontext
def open_shift_cli(business_id, user_id, start_cash_cents):
    try:
        shift = shift_service.open_shift(business_id, user_id, start_cash_cents)
    except SaleEngineError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Opened shift {shift.id} for user {user_id}")


@shifts_group.command('close')
@click.option('--business-id', type=int, required=True)
@click.option('--shift-id', type=int, required=True)
@click.option('--end-cash-cents', type=int, required=True)
@with_appcontext
def close_shift_cli(business_id, shift_id, end_cash_cents):
    try:
        shift = shift_service.close_shift(shift_id, business_id, end_cash_cents)
    except SaleEngineError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(
        f"PASS Closed shift {shift.id}: expected={shift.expected_cash_cents} "
        f"counted={shift.end_cash_cents} variance={shift.cash_variance_cents}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(db_admin_group)
    app.cli.add_command(businesses_group)
    app.cli.add_command(reservations_group)
    app.cli.add_command(shifts_group)
