# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/freshpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to freshpos (PowerShell: $env:FLASK_APP="freshpos").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog maintenance:
# - python -m flask catalog refresh-status [--date 2026-01-31]
#   Re-run the expiry classifier over active products and store changed statuses.
#   Meant for a daily scheduler.
#
# Ledger inspection:
# - python -m flask ledger verify [--product-id 3]
#   Compare each product's weight with the sum of its stock adjustments.
#   Exits with status 1 when any product has drifted.

import click
from flask.cli import with_appcontext

from .errors import NotFoundError
from .extensions import db
from .services import catalog_service, ledger_service
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    from . import models  # noqa: F401

    click.echo("BUILD  Creating tables...")
    db.create_all()
    click.echo("PASS Database ready.")


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

    click.echo("PASS Database reset complete.")


@click.group('catalog')
def catalog_group():
    """Product catalog maintenance."""


@catalog_group.command('refresh-status')
@click.option('--date', 'as_of', default=None, help='Business date (YYYY-MM-DD); defaults to today')
@with_appcontext
def refresh_status(as_of):
    """Recompute cached expiry statuses for active products."""
    try:
        today = parse_iso_date(as_of)
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--date")

    result = catalog_service.recompute_statuses(today=today)
    click.echo(
        f"PASS Checked {result['checked']} products, updated {result['updated']} "
        f"(as of {result['as_of']})"
    )


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection."""


@ledger_group.command('verify')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def verify_ledger(product_id):
    """Replay adjustments and compare with cached weights."""
    if product_id is not None:
        try:
            results = [ledger_service.verify_balance(product_id)]
        except NotFoundError as exc:
            raise click.ClickException(exc.message)
        drifted = [r for r in results if not r["consistent"]]
    else:
        drifted = ledger_service.verify_all_balances()

    if not drifted:
        click.echo("PASS Ledger balances reconcile.")
        return

    click.echo(f"FAIL {len(drifted)} product(s) drifted:")
    for r in drifted:
        click.echo(
            f"  - product_id={r['product_id']} weight={r['weight']} replayed={r['replayed_weight']}"
        )
    raise click.exceptions.Exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(ledger_group)
