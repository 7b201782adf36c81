# Overview: Flask CLI command groups for bootstrap and the expiration sweep.

# backend/procure/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init --admin-email admin@procure.local --admin-name "Admin"
#   Create all tables (if missing) and an admin staff member (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Expiration sweep:
# - python -m flask expiration run
#   Expire every elapsed batch now and print a summary.
# - python -m flask expiration expiring --days 7
#   List batches expiring within N days.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Staff
from .models.staff import ROLE_ADMIN
from .services import expiration_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@procure.local', help='Admin staff email')
@click.option('--admin-name', default='Administrator', help='Admin staff full name')
@with_appcontext
def init_system(admin_email, admin_name):
    """Create tables and ensure an admin staff member exists."""
    click.echo("START Initializing procurement backend...")
    db.create_all()

    admin = db.session.query(Staff).filter_by(email=admin_email).first()
    if admin:
        click.echo(f"PASS Admin already exists: {admin.email} (ID: {admin.id})")
        return

    admin = Staff(fullname=admin_name, email=admin_email, role=ROLE_ADMIN, is_active=True)
    db.session.add(admin)
    db.session.commit()
    click.echo(f"PASS Created admin: {admin.email} (ID: {admin.id})")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('expiration')
def expiration_group():
    """Expiration sweep commands."""


@expiration_group.command('run')
@with_appcontext
def run_expiration():
    """Run one expiration sweep now."""
    result = expiration_service.run_sweep_once()
    click.echo(
        f"Found {result.found} expired batches: "
        f"{len(result.expired)} expired, {len(result.skipped)} skipped, {len(result.failed)} failed"
    )
    for expiry in result.expired:
        click.echo(
            f"  batch {expiry.purchase_order_id}: product {expiry.product_id} "
            f"-{expiry.stock_removed} (stock now {expiry.stock_after})"
            + (" LOW STOCK" if expiry.low_stock else "")
        )
    if result.failed:
        raise click.ClickException(f"Failed batches: {', '.join(map(str, result.failed))}")


@expiration_group.command('expiring')
@click.option('--days', default=7, show_default=True, type=click.IntRange(min=0))
@with_appcontext
def list_expiring(days):
    """List batches expiring within N days."""
    batches = expiration_service.get_batches_expiring_within(days)
    if not batches:
        click.echo(f"No batches expiring within {days} days")
        return
    for batch in batches:
        name = batch.product.name if batch.product else batch.product_id
        click.echo(
            f"  batch {batch.id}: {name} x{batch.remaining_qte} expires {batch.expiration_date:%Y-%m-%d %H:%M}"
        )


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(expiration_group)
