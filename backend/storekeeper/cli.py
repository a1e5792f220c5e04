# Overview: Flask CLI command groups for bootstrap, stock, reports, settings and backups.

# backend/storekeeper/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent). Use `flask db upgrade` for migrated installs.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Items:
# - python -m flask items list [--search brake] [--all]
# - python -m flask items create --sku BP-100 --name "Brake Pad" --price-cents 45000 --cost-cents 30000 --opening-stock 10
# - python -m flask items deactivate 3
#
# Stock ledger:
# - python -m flask stock adjust --note "Cracked" -- 3 damage_write_off -2
#   Options go before `--` so a negative QUANTITY is not read as an option.
# - python -m flask stock history [--item-id 3] [--type sale] [--start 2026-10-01] [--end 2026-10-31]
# - python -m flask stock reconcile
#   Report items whose cached quantity differs from the ledger.
# - python -m flask stock rebuild
#   Recompute cached quantity and last sale date from the ledger.
# - python -m flask stock fsn [--threshold-days 120]
#
# Reports:
# - python -m flask reports daily-sales|product-sales|profit [--start ...] [--end ...]
# - python -m flask reports current-stock [--low-only] | non-moving [--fsn N] | dashboard
#
# Settings:
# - python -m flask settings show | defaults
# - python -m flask settings set low_stock_method percentage
#
# Backups:
# - python -m flask backups create | list
# - python -m flask backups restore <filename> --yes
# - python -m flask backups import /path/to/file.db --yes
# - python -m flask backups export <filename> /destination/dir
# - python -m flask backups delete <filename>
# - python -m flask backups cleanup [--retention-days 30]

import json

import click
from flask.cli import with_appcontext

from .errors import StorekeeperError
from .extensions import db
from .services import (
    backup_service,
    inventory_service,
    ledger_service,
    reporting_service,
    settings_service,
)
from .services.ledger_service import ADJUSTMENT_TYPES
from .storage import get_storage


def _money(cents) -> str:
    if cents is None:
        return "-"
    sign = "-" if cents < 0 else ""
    return f"{sign}{abs(cents) // 100}.{abs(cents) % 100:02d}"


def _fail(exc: StorekeeperError):
    message = str(exc)
    if exc.details:
        message = f"{message} {json.dumps(exc.details, default=str)}"
    raise click.ClickException(message)


# =============================================================================
# system
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables for the sql backend (no-op for memory)."""
    storage = get_storage()
    if storage.name != "sql":
        click.echo(f"PASS Storage backend '{storage.name}' needs no schema.")
        return
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


# =============================================================================
# items
# =============================================================================

@click.group('items')
def items_group():
    """Item master commands."""


@items_group.command('list')
@click.option('--search', default=None, help='Name or SKU substring')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive items')
@with_appcontext
def list_items(search, include_inactive):
    """List items with their current quantity."""
    items = inventory_service.list_items(search=search, include_inactive=include_inactive)
    if not items:
        click.echo("No items found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'SKU':<14} {'Name':<30} {'Qty':>6} {'Price':>10} {'FSN':>4} {'Active':>7}")
    click.echo("=" * 90)
    for item in items:
        click.echo(
            f"{item.id:<5} {item.sku:<14} {item.name[:30]:<30} {item.quantity:>6} "
            f"{_money(item.price_cents):>10} {item.fsn_classification or '-':>4} "
            f"{'Yes' if item.is_active else 'No':>7}"
        )
    click.echo("=" * 90 + "\n")


@items_group.command('create')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price-cents', type=int, required=True)
@click.option('--cost-cents', type=int, required=True)
@click.option('--category', default=None)
@click.option('--reorder-level', type=int, default=None)
@click.option('--max-stock', type=int, default=None)
@click.option('--opening-stock', type=int, default=0)
@click.option('--by', 'created_by', default='cli', help='Actor recorded on the ledger')
@with_appcontext
def create_item(sku, name, price_cents, cost_cents, category, reorder_level, max_stock, opening_stock, created_by):
    """Create an item (opening stock goes through the ledger)."""
    try:
        item = inventory_service.create_item(
            sku=sku,
            name=name,
            price_cents=price_cents,
            cost_cents=cost_cents,
            category=category,
            reorder_level=reorder_level,
            max_stock=max_stock,
            opening_stock=opening_stock,
            created_by=created_by,
        )
    except StorekeeperError as exc:
        _fail(exc)
    click.echo(f"PASS Created item {item.sku} (ID: {item.id}, quantity: {item.quantity})")


@items_group.command('deactivate')
@click.argument('item_id', type=int)
@with_appcontext
def deactivate_item(item_id):
    """Hide an item from stock reports (items are never deleted)."""
    try:
        item = inventory_service.deactivate_item(item_id)
    except StorekeeperError as exc:
        _fail(exc)
    click.echo(f"PASS Deactivated item {item.sku} (ID: {item.id})")


# =============================================================================
# stock
# =============================================================================

@click.group('stock')
def stock_group():
    """Stock ledger commands."""


@stock_group.command('adjust')
@click.argument('item_id', type=int)
@click.argument('adjustment_type', type=click.Choice(ADJUSTMENT_TYPES))
@click.argument('quantity', type=int)
@click.option('--note', default=None)
@click.option('--by', 'created_by', default='cli', help='Actor recorded on the ledger')
@with_appcontext
def adjust_stock(item_id, adjustment_type, quantity, note, created_by):
    """Append a manual adjustment. QUANTITY is the signed delta (use `--` before negatives)."""
    try:
        entry = inventory_service.adjust_stock(item_id, adjustment_type, quantity, note=note, created_by=created_by)
        item = inventory_service.get_item(item_id)
    except StorekeeperError as exc:
        _fail(exc)
    click.echo(f"PASS Entry {entry.id}: {adjustment_type} {quantity:+d} -> {item.sku} now {item.quantity}")


@stock_group.command('history')
@click.option('--item-id', type=int, default=None)
@click.option('--type', 'adjustment_type', type=click.Choice(ADJUSTMENT_TYPES), default=None)
@click.option('--start', default=None, help='YYYY-MM-DD (inclusive)')
@click.option('--end', default=None, help='YYYY-MM-DD (inclusive)')
@click.option('--limit', type=int, default=50)
@with_appcontext
def stock_history(item_id, adjustment_type, start, end, limit):
    """Show ledger entries, newest first."""
    try:
        entries = ledger_service.list_entries(
            item_id=item_id, adjustment_type=adjustment_type, start=start, end=end, limit=limit
        )
    except StorekeeperError as exc:
        _fail(exc)
    if not entries:
        click.echo("No ledger entries found.")
        return
    for e in entries:
        click.echo(
            f"{e.id:<6} {e.occurred_at:%Y-%m-%d %H:%M} item={e.item_id:<5} "
            f"{e.adjustment_type:<17} {e.quantity_delta:+6d}  {e.created_by}  {e.note or ''}"
        )


@stock_group.command('reconcile')
@with_appcontext
def reconcile_stock():
    """Compare cached quantities with the ledger (read-only)."""
    drift = inventory_service.reconcile()
    if not drift:
        click.echo("PASS Cached quantities match the ledger.")
        return
    click.echo(f"WARN {len(drift)} item(s) drifted from the ledger:")
    for row in drift:
        click.echo(f"  {row['sku']}: cached={row['cached_quantity']} ledger={row['ledger_quantity']}")


@stock_group.command('rebuild')
@with_appcontext
def rebuild_stock():
    """Recompute cached quantity and last sale date from the ledger."""
    corrections = inventory_service.rebuild_from_ledger()
    if not corrections:
        click.echo("PASS Nothing to correct.")
        return
    for row in corrections:
        click.echo(f"FIX  {row['sku']}: quantity {row['quantity_before']} -> {row['quantity_after']}")
    click.echo(f"PASS Corrected {len(corrections)} item(s).")


@stock_group.command('fsn')
@click.option('--threshold-days', type=int, default=None, help='Defaults to the non_moving_threshold_days setting')
@with_appcontext
def recompute_fsn(threshold_days):
    """Reclassify every item as Fast, Slow or Non-moving."""
    threshold = threshold_days or settings_service.get_thresholds().non_moving_threshold_days
    try:
        counts = inventory_service.recompute_fsn(threshold)
    except StorekeeperError as exc:
        _fail(exc)
    click.echo(f"PASS FSN @ {threshold}d: F={counts['F']} S={counts['S']} N={counts['N']}")


# =============================================================================
# reports
# =============================================================================

@click.group('reports')
def reports_group():
    """Analytics reports."""


def _print_rows(rows, columns):
    if not rows:
        click.echo("No rows.")
        return
    click.echo("  ".join(f"{c:>16}" for c in columns))
    for row in rows:
        cells = []
        for c in columns:
            value = row.get(c)
            cells.append(f"{_money(value) if c.endswith('_cents') else value!s:>16}")
        click.echo("  ".join(cells))


@reports_group.command('daily-sales')
@click.option('--start', default=None)
@click.option('--end', default=None)
@with_appcontext
def daily_sales_report(start, end):
    try:
        rows = reporting_service.daily_sales(start, end)
    except StorekeeperError as exc:
        _fail(exc)
    _print_rows(rows, ["day", "invoice_count", "items_sold", "gross_sales_cents", "returns_cents", "net_sales_cents"])


@reports_group.command('product-sales')
@click.option('--start', default=None)
@click.option('--end', default=None)
@click.option('--search', default=None)
@with_appcontext
def product_sales_report(start, end, search):
    try:
        rows = reporting_service.product_sales(start, end, search=search)
    except StorekeeperError as exc:
        _fail(exc)
    _print_rows(rows, ["sku", "name", "quantity_sold", "sales_cents"])


@reports_group.command('current-stock')
@click.option('--low-only', is_flag=True)
@click.option('--search', default=None)
@with_appcontext
def current_stock_report(low_only, search):
    rows = reporting_service.current_stock(search=search, low_stock_only=low_only)
    _print_rows(rows, ["sku", "name", "quantity", "stock_value_cents", "status"])


@reports_group.command('non-moving')
@click.option('--fsn', type=click.Choice(["F", "S", "N"]), default=None)
@with_appcontext
def non_moving_report(fsn):
    rows = reporting_service.non_moving_items(fsn=fsn)
    _print_rows(rows, ["sku", "name", "fsn_classification", "days_since_sale", "stock_value_cents"])


@reports_group.command('profit')
@click.option('--start', default=None)
@click.option('--end', default=None)
@with_appcontext
def profit_report(start, end):
    try:
        rows = reporting_service.profit_summary(start, end)
    except StorekeeperError as exc:
        _fail(exc)
    _print_rows(rows, ["day", "revenue_cents", "cost_cents", "profit_cents", "returns_cents", "net_profit_cents"])


@reports_group.command('dashboard')
@with_appcontext
def dashboard_report():
    click.echo(json.dumps(reporting_service.dashboard_summary(), indent=2))


# =============================================================================
# settings
# =============================================================================

@click.group('settings')
def settings_group():
    """Threshold and backup settings."""


@settings_group.command('show')
@with_appcontext
def show_settings():
    for key, value in settings_service.get_all_settings().items():
        click.echo(f"{key:<28} {value}")


@settings_group.command('defaults')
@with_appcontext
def show_defaults():
    for key, value in settings_service.get_defaults().items():
        click.echo(f"{key:<28} {value}")


@settings_group.command('set')
@click.argument('key')
@click.argument('value')
@with_appcontext
def set_setting(key, value):
    try:
        stored = settings_service.set_setting(key, value)
    except StorekeeperError as exc:
        _fail(exc)
    click.echo(f"PASS {key} = {stored}")


# =============================================================================
# backups
# =============================================================================

@click.group('backups')
def backups_group():
    """SQLite database backups."""


@backups_group.command('create')
@with_appcontext
def create_backup():
    try:
        info = backup_service.create_backup()
    except StorekeeperError as exc:
        _fail(exc)
    click.echo(f"PASS Backup created: {info['filename']} ({info['size_bytes']} bytes)")


@backups_group.command('list')
@with_appcontext
def list_backups():
    backups = backup_service.list_backups()
    if not backups:
        click.echo("No backups found.")
        return
    for b in backups:
        click.echo(f"{b['filename']:<50} {b['size_bytes']:>12}  {b['modified_at']}")


@backups_group.command('restore')
@click.argument('filename')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def restore_backup(filename, yes):
    if not yes:
        click.confirm(f"WARN Replace the live database with {filename}?", abort=True)
    try:
        result = backup_service.restore_backup(filename)
    except StorekeeperError as exc:
        _fail(exc)
    click.echo(f"PASS Restored from {filename}. Safety copy: {result['safety_backup']}")


@backups_group.command('import')
@click.argument('path', type=click.Path(dir_okay=False))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def import_backup(path, yes):
    if not yes:
        click.confirm(f"WARN Replace the live database with {path}?", abort=True)
    try:
        result = backup_service.import_backup(path)
    except StorekeeperError as exc:
        _fail(exc)
    click.echo(f"PASS Imported {path}. Safety copy: {result['safety_backup']}")


@backups_group.command('export')
@click.argument('filename')
@click.argument('destination', type=click.Path())
@with_appcontext
def export_backup(filename, destination):
    try:
        result = backup_service.export_backup(filename, destination)
    except StorekeeperError as exc:
        _fail(exc)
    click.echo(f"PASS Exported to {result['destination']}")


@backups_group.command('delete')
@click.argument('filename')
@with_appcontext
def delete_backup(filename):
    try:
        backup_service.delete_backup(filename)
    except StorekeeperError as exc:
        _fail(exc)
    click.echo(f"PASS Deleted {filename}")


@backups_group.command('cleanup')
@click.option('--retention-days', type=int, default=None, help='Defaults to the backup_retention_days setting')
@with_appcontext
def cleanup_backups(retention_days):
    try:
        deleted = backup_service.cleanup_backups(retention_days)
    except StorekeeperError as exc:
        _fail(exc)
    click.echo(f"PASS Removed {len(deleted)} old backup(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(items_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(reports_group)
    app.cli.add_command(settings_group)
    app.cli.add_command(backups_group)
