# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/clinicpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables (idempotent). Prefer `flask db upgrade` on shared databases.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Quotes:
# - python -m flask quotes expire [--as-of 2026-01-31]
#   Mark pending/approved quotes past their expiration date as expired.
#
# Laboratory:
# - python -m flask lab stats
#   Print laboratory order counts by status, plus overdue.
#
# Document numbers:
# - python -m flask sequences peek SALE [--date 2026-01-31]
#   Show the number the next allocation would return (read-only).

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import WorkflowError
from .services import laboratory_service, quote_service
from .services.concurrency import unit_of_work
from .services.document_service import PREFIXES, peek_next_number
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create every table that does not exist yet."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    click.echo("PASS Schema ready.")


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


@click.group('quotes')
def quotes_group():
    """Quote maintenance commands."""


@quotes_group.command('expire')
@click.option('--as-of', 'as_of', default=None, help='Reference date (YYYY-MM-DD), default today')
@with_appcontext
def expire_quotes(as_of):
    """Mark open quotes past their expiration date as expired."""
    try:
        reference = parse_iso_date(as_of)
    except ValueError:
        raise click.BadParameter("must be an ISO-8601 date", param_hint="--as-of")

    try:
        with unit_of_work():
            count = quote_service.expire_stale_quotes(reference)
    except WorkflowError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Expired {count} quote(s).")


@click.group('lab')
def lab_group():
    """Laboratory order inspection commands."""


@lab_group.command('stats')
@with_appcontext
def lab_stats():
    """Print laboratory order counts by status."""
    stats = laboratory_service.laboratory_order_stats()

    click.echo("\nLaboratory orders:")
    click.echo("-" * 32)
    for status in laboratory_service.LAB_STATUSES:
        click.echo(f"{status:<22} {stats[status]:>6}")
    click.echo("-" * 32)
    click.echo(f"{'total':<22} {stats['total']:>6}")
    click.echo(f"{'overdue':<22} {stats['overdue']:>6}")


@click.group('sequences')
def sequences_group():
    """Document number inspection commands."""


@sequences_group.command('peek')
@click.argument('prefix', type=click.Choice(PREFIXES))
@click.option('--date', 'scope_date', default=None, help='Sequence day (YYYY-MM-DD), default today')
@with_appcontext
def peek_sequence(prefix, scope_date):
    """Show the next document number without allocating it."""
    try:
        scope = parse_iso_date(scope_date)
    except ValueError:
        raise click.BadParameter("must be an ISO-8601 date", param_hint="--date")

    click.echo(peek_next_number(prefix, scope))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(quotes_group)
    app.cli.add_command(lab_group)
    app.cli.add_command(sequences_group)
