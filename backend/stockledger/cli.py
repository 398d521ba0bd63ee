# Overview: Flask CLI command groups for bootstrap, stock inspection, and ledger maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stockledger (PowerShell: $env:FLASK_APP="stockledger").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock inspection:
# - python -m flask stock summary [--low-only]
#   Tracked categories with current stock, low-stock first.
# - python -m flask stock alerts
#   Low-stock alerts with urgency and shortage.
# - python -m flask stock verify
#   Re-check the movement log against category stock. Exits 1 on any violation.
#
# Stock maintenance:
# - python -m flask stock adjust NET --type in --quantity 10 --notes "Found in storage"
#   Apply one manual movement. For --type adjustment the quantity is the target level.
# - python -m flask stock bulk adjustments.json
#   Apply a JSON list of {"category_id" | "category_code", "delta", "notes"} entries.
#   Unknown category codes abort before any entry is applied.

import json

import click
from flask.cli import with_appcontext

from .extensions import db, get_cache
from .errors import StockLedgerError, NotFoundError
from .models import MovementType
from .services import ledger_service, bulk_service
from .services.category_service import get_category_by_code


def _fail(message: str) -> None:
    click.echo(f"FAIL {message}")
    click.get_current_context().exit(1)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (idempotent)."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the movement log!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('stock')
def stock_group():
    """Stock ledger inspection and maintenance."""


@stock_group.command('summary')
@click.option('--low-only', is_flag=True, help='Only low-stock categories')
@with_appcontext
def summary_cli(low_only):
    """
    Show stock levels for tracked categories.

    Example:
        flask stock summary
        flask stock summary --low-only
    """
    summary = ledger_service.get_stock_summary(low_stock_only=low_only)

    if not summary["categories"]:
        click.echo("No stock-tracked categories found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Code':<6} {'Name':<30} {'Stock':>8} {'Reorder':>8} {'Unit':<10} {'Low'}")
    click.echo("="*80)

    for row in summary["categories"]:
        low = "LOW" if row["is_low_stock"] else "-"
        unit = row["unit"] or "-"
        click.echo(
            f"{row['code']:<6} {row['name'][:30]:<30} {row['current_stock']:>8} "
            f"{row['reorder_point']:>8} {unit:<10} {low}"
        )

    click.echo("="*80)
    click.echo(
        f"{summary['total_categories']} categories, {summary['low_stock_count']} low, "
        f"{summary['out_of_stock_count']} out of stock\n"
    )


@stock_group.command('alerts')
@with_appcontext
def alerts_cli():
    """List low-stock alerts, most urgent first."""
    alerts = ledger_service.get_low_stock_alerts()

    if not alerts["alerts"]:
        click.echo("PASS No low-stock alerts.")
        return

    for alert in alerts["alerts"]:
        click.echo(
            f"{alert['urgency'].upper():<9} {alert['code']:<4} {alert['name']}: "
            f"{alert['current_stock']} on hand, reorder at {alert['reorder_point']}, "
            f"short {alert['shortage']}"
        )
    click.echo(f"{alerts['total_alerts']} alerts ({alerts['critical_count']} critical, {alerts['high_count']} high)")


@stock_group.command('verify')
@with_appcontext
def verify_cli():
    """
    Re-check every movement and every category counter.

    Exits with status 1 when any violation is found.
    """
    violations = ledger_service.verify_ledger()
    if not violations:
        click.echo("PASS Ledger is consistent.")
        return

    for violation in violations:
        movement = violation["movement_id"] if violation["movement_id"] is not None else "-"
        click.echo(f"FAIL category={violation['category_id']} movement={movement}: {violation['problem']}")
    _fail(f"{len(violations)} ledger violations found.")


@stock_group.command('adjust')
@click.argument('category_code')
@click.option('--type', 'movement_type', required=True,
              type=click.Choice([m.value for m in MovementType]), help='Movement type')
@click.option('--quantity', type=int, required=True, help='Amount, or target level for adjustment')
@click.option('--notes', default=None, help='Free-text reason')
@click.option('--actor', default='cli', show_default=True, help='Recorded as created_by')
@with_appcontext
def adjust_cli(category_code, movement_type, quantity, notes, actor):
    """
    Apply one manual stock movement.

    Example:
        flask stock adjust NET --type out --quantity 3 --notes "Install at site B"
    """
    try:
        category = get_category_by_code(category_code, cache=get_cache())
        result = ledger_service.apply_movement(
            category_id=category.id,
            movement_type=movement_type,
            quantity=quantity,
            actor=actor,
            notes=notes,
        )
    except StockLedgerError as e:
        _fail(f"{e.code}: {e}")

    flag = " (LOW STOCK)" if result.is_low_stock else ""
    click.echo(f"PASS {category.code}: {result.before_stock} -> {result.after_stock}{flag}")


def _resolve_entry(entry):
    """Map category_code to category_id. Raises NotFoundError for unknown codes."""
    if not isinstance(entry, dict):
        return entry
    if entry.get("category_id") is None and entry.get("category_code"):
        category = get_category_by_code(entry["category_code"], cache=get_cache())
        entry = dict(entry, category_id=category.id)
    return entry


@stock_group.command('bulk')
@click.argument('path', type=click.File('r'))
@click.option('--actor', default='cli', show_default=True, help='Recorded as created_by')
@with_appcontext
def bulk_cli(path, actor):
    """
    Apply a JSON file of stock deltas. Each entry succeeds or fails on its own.

    Exits with status 1 when any entry failed.
    """
    try:
        adjustments = json.load(path)
    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON: {e}")
    if not isinstance(adjustments, list):
        _fail("Expected a JSON list of adjustments")

    try:
        resolved = [_resolve_entry(e) for e in adjustments]
    except NotFoundError as e:
        _fail(f"{e.code}: {e}")

    result = bulk_service.apply_bulk(resolved, actor=actor)

    for row in result.results:
        if row["success"]:
            click.echo(f"PASS category={row['category_id']}: {row['before_stock']} -> {row['after_stock']}")
        else:
            click.echo(f"FAIL category={row['category_id']}: {row['error_code']}: {row['error']}")

    summary = result.summary
    click.echo(f"{summary['successful']}/{summary['total']} applied, {summary['failed']} failed")
    if summary["failed"]:
        click.get_current_context().exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
