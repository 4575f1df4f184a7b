# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/tablestore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Use `flask db upgrade` for migrated deployments.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Table inspection:
# - python -m flask tables list [--type sale]
#   List tables with row counts.
# - python -m flask tables validate 3
#   Run advisory validation over a table and print the per-column summary.
# - python -m flask tables import-file 3 ./items.xlsx --mode add --owner owner@example.com
#   Import a CSV/JSON/XLSX file; file headers map to columns by exact name.
#
# Ledger:
# - python -m flask ledger analytics [--table-id 3] [--date-from 2026-01-01] [--date-to 2026-01-31]

import json

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import func

from .access import UserContext
from .errors import AppError, ImportValidationError
from .extensions import db
from .models import TableRow, UserTable
from .providers import import_pipeline, inventory_ledger, validation_summary_service
from .services.file_service import parse_upload
from .services.import_service import ColumnMapping, ImportRequest
from .services.ledger_service import parse_date_filters

CLI_ADMIN = UserContext(user_id="cli", email="cli", is_admin=True)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating missing tables...")
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
    db.session.remove()
    db.engine.dispose()
    current_app.extensions["tablestore_cache"].clear()

    click.echo("PASS Database reset complete.")


@click.group('tables')
def tables_group():
    """User table inspection and bulk operations."""


@tables_group.command('list')
@click.option('--type', 'table_type', default=None, help='Filter by table type (default, sale, rent)')
@with_appcontext
def list_tables(table_type):
    """List tables with their row counts."""
    q = (
        db.session.query(UserTable, func.count(TableRow.id))
        .outerjoin(TableRow, TableRow.table_id == UserTable.id)
        .group_by(UserTable.id)
        .order_by(UserTable.id)
    )
    if table_type:
        q = q.filter(UserTable.table_type == table_type)

    results = q.all()
    if not results:
        click.echo("No tables found.")
        return

    click.echo(f"{'ID':<6} {'Name':<30} {'Type':<8} {'Visibility':<10} {'Rows':<8} Owner")
    click.echo("-" * 80)
    for table, row_count in results:
        click.echo(
            f"{table.id:<6} {table.name[:30]:<30} {table.table_type:<8} {table.visibility:<10} {row_count:<8} {table.created_by}"
        )


@tables_group.command('validate')
@click.argument('table_id', type=int)
@click.option('--limit', default=500, show_default=True, help='Rows to check')
@with_appcontext
def validate_table(table_id, limit):
    """Run advisory validation over a table."""
    try:
        table, result = validation_summary_service().validate_table(table_id, CLI_ADMIN, limit=limit)
    except AppError as e:
        raise click.ClickException(e.message)

    click.echo(f"Table {table.id} ({table.name}): {result.message}")
    click.echo(f"  rows={result.total_rows} valid={result.valid_rows} invalid={result.invalid_rows}")
    for summary in result.summary:
        marker = "FAIL" if summary.invalid_count else "PASS"
        click.echo(f"  {marker} {summary.column_name} [{summary.column_type}] invalid={summary.invalid_count}")
        for sample in summary.sample_errors:
            click.echo(f"      - {sample}")


@tables_group.command('import-file')
@click.argument('table_id', type=int)
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--mode', type=click.Choice(['add', 'replace']), default='add', show_default=True)
@click.option('--owner', required=True, help='Email recorded as the importing user (must own the table)')
@with_appcontext
def import_file(table_id, path, mode, owner):
    """Import a CSV/JSON/XLSX file into a table."""
    table = db.session.get(UserTable, table_id)
    if table is None:
        raise click.ClickException("Table not found")

    with open(path, "rb") as fh:
        try:
            parsed = parse_upload(path, fh)
        except AppError as e:
            raise click.ClickException(e.message)

    column_names = {c.name for c in table.columns}
    mappings = [ColumnMapping(h, h) for h in parsed["headers"] if h in column_names]
    if not mappings:
        raise click.ClickException("No file headers match the table's column names")

    request = ImportRequest(
        data=parsed["data"],
        column_mappings=mappings,
        has_headers=True,
        headers=parsed["headers"],
        mode=mode,
    )
    user = UserContext(user_id=owner, email=owner)
    try:
        result = import_pipeline().run(table_id, request, user)
    except ImportValidationError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        for line in e.errors[:20]:
            click.echo(f"  - {line}")
        if e.total_errors > 20:
            click.echo(f"  ... and {e.total_errors - 20} more")
        raise SystemExit(1)
    except AppError as e:
        db.session.rollback()
        raise click.ClickException(e.message)

    payload = result.to_dict()
    click.echo(f"PASS {payload['message']} (skipped {payload['skippedRows']} blank rows)")
    for line in payload["errors"]:
        click.echo(f"  - {line}")


@click.group('ledger')
def ledger_group():
    """Inventory ledger reports."""


@ledger_group.command('analytics')
@click.option('--table-id', type=int, default=None)
@click.option('--date-from', default=None, help='YYYY-MM-DD (inclusive)')
@click.option('--date-to', default=None, help='YYYY-MM-DD (inclusive)')
@with_appcontext
def ledger_analytics(table_id, date_from, date_to):
    """Print ledger analytics as JSON."""
    try:
        start, end = parse_date_filters(date_from, date_to)
    except AppError as e:
        raise click.ClickException(e.message)
    result = inventory_ledger().query_analytics(date_from=start, date_to=end, table_id=table_id)
    click.echo(json.dumps(result, indent=2, default=str))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tables_group)
    app.cli.add_command(ledger_group)
