# Overview: Flask CLI command groups for bootstrap, ledger inspection and maintenance.

# backend/distro/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask demo seed
#   Create an admin, a distributor with one employee, two shops and three products.
#
# Ledger inspection:
# - python -m flask ledger reconcile [--distributor-id 1]
#   Replay every shop's ledger and compare with its stored debt. Exits 1 on mismatch.
# - python -m flask ledger aging [--distributor-id 1] [--as-of 2026-01-31T00:00:00Z]
#   Print the debt aging buckets (platform-wide when no distributor is given).

import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Employee, Shop, Product
from .models.accounts import ROLE_ADMIN, ROLE_DISTRIBUTOR, ROLE_EMPLOYEE
from .money import format_cents
from .services import aging_service, ledger_service
from .time_utils import parse_iso_datetime


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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
    click.echo("PASS Database reset complete")


@click.group('demo')
def demo_group():
    """Demo data."""


@demo_group.command('seed')
@with_appcontext
def seed_demo():
    """Create a small distributor with shops and products (idempotent)."""
    if db.session.query(User).filter_by(phone="998900000001").first():
        click.echo("WARN  Demo data already present, skipping...")
        return

    admin = User(name="Platform Admin", phone="998900000000", role=ROLE_ADMIN)
    distributor = User(name="Demo Distributor", phone="998900000001", role=ROLE_DISTRIBUTOR)
    agent = User(name="Demo Agent", phone="998900000002", role=ROLE_EMPLOYEE)
    db.session.add_all([admin, distributor, agent])
    db.session.flush()

    db.session.add(Employee(user_id=agent.id, distributor_id=distributor.id))
    db.session.add_all([
        Shop(distributor_id=distributor.id, name="Corner Market", owner_name="Aziz", phone="998901112233"),
        Shop(distributor_id=distributor.id, name="Family Store", owner_name="Dilnoza", phone="998904445566"),
        Product(distributor_id=distributor.id, name="Sunflower oil 1L", price_cents=8000_00, stock=100),
        Product(distributor_id=distributor.id, name="Sugar 1kg", price_cents=5000_00, stock=200),
        Product(distributor_id=distributor.id, name="Tea 100g", price_cents=12500_50, stock=50),
    ])
    db.session.commit()

    click.echo(f"PASS Admin user id: {admin.id}")
    click.echo(f"PASS Distributor user id: {distributor.id}")
    click.echo(f"PASS Employee user id: {agent.id}")


@click.group('ledger')
def ledger_group():
    """Shop debt ledger inspection."""


@ledger_group.command('reconcile')
@click.option('--distributor-id', type=int, default=None, help='Limit to one distributor')
@with_appcontext
def reconcile(distributor_id):
    """Replay the ledger for every shop and report balance mismatches."""
    report = ledger_service.reconcile_distributor(distributor_id)
    click.echo(f"Checked {report['shops_checked']} shops")
    for row in report["mismatches"]:
        click.echo(
            f"FAIL shop {row['shop_id']} ({row['shop_name']}): stored "
            f"{format_cents(row['stored_debt_cents'])}, ledger {format_cents(row['replayed_debt_cents'])}"
        )
    if not report["consistent"]:
        sys.exit(1)
    click.echo("PASS Ledger consistent")


@ledger_group.command('aging')
@click.option('--distributor-id', type=int, default=None, help='Distributor view; platform view when omitted')
@click.option('--as-of', default=None, help='ISO-8601 reference time (default: now)')
@with_appcontext
def aging(distributor_id, as_of):
    """Print debt aging buckets."""
    report = aging_service.get_debt_aging(distributor_id, now=parse_iso_datetime(as_of))
    click.echo(f"Debt aging ({report['scope']}) as of {report['as_of']}")
    for bucket in report["buckets"]:
        click.echo(f"  {bucket['key']:>8} days  {bucket['count']:>4} shops  {bucket['total']:>16}")
    click.echo(f"  {'total':>8}       {report['shop_count']:>4} shops  {report['total']:>16}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(demo_group)
    app.cli.add_command(ledger_group)
