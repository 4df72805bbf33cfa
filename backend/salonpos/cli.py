# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/salonpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create missing tables (idempotent). Use `flask db upgrade` for migrated deployments.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Cash closures:
# - python -m flask closures list --limit 30
#   Recent closures with expected/counted/delta.
# - python -m flask closures show --date 2024-03-15
#   One closure in detail.
# - python -m flask closures cash-in --date 2024-03-15
#   Cash receipts for a local day (what a closure would use).
#
# Ledger maintenance:
# - python -m flask ledger backfill-history [--since 2024-03-01]
#   Regenerate client history entries missing for linked transactions.
# - python -m flask ledger verify-history [--since 2024-03-01]
#   Report history drift without writing. Exits 1 on drift.
#
# Clients:
# - python -m flask clients refresh-independence
#   Mark dependents past the age threshold as independent.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services import cash_closure_service, client_service, linkage_service
from .time_utils import local_range_bounds, local_today, parse_iso_date
from .validation import format_cents


def _parse_date(value: str | None, option: str):
    try:
        return parse_iso_date(value)
    except ValueError:
        raise click.BadParameter("expected YYYY-MM-DD", param_hint=option)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


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


@click.group('closures')
def closures_group():
    """Cash closure inspection commands."""


@closures_group.command('list')
@click.option('--limit', default=30, show_default=True, type=int)
@with_appcontext
def list_closures(limit):
    """List recent closures."""
    closures = cash_closure_service.list_closures(limit=limit)
    if not closures:
        click.echo("No closures recorded.")
        return

    click.echo(f"{'Date':<12} {'Expected':>10} {'Counted':>10} {'Delta':>10}  {'Status':<9} Closed by")
    click.echo("-" * 70)
    for closure in closures:
        click.echo(
            f"{closure.closure_date.isoformat():<12} "
            f"{format_cents(closure.expected_cash_cents):>10} "
            f"{format_cents(closure.counted_cash_cents):>10} "
            f"{format_cents(closure.delta_cents):>10}  "
            f"{closure.delta_status:<9} {closure.closed_by or '-'}"
        )


@closures_group.command('show')
@click.option('--date', 'closure_date', required=True, help='Local date, YYYY-MM-DD')
@with_appcontext
def show_closure(closure_date):
    """Show one closure."""
    day = _parse_date(closure_date, '--date')
    closure = cash_closure_service.get_closure_by_date(day)
    if not closure:
        raise click.ClickException(f"No closure recorded for {day.isoformat()}")

    currency = current_app.config.get("CURRENCY", "CHF")
    click.echo(f"Closure {day.isoformat()} (#{closure.id})")
    click.echo(f"  Opening cash:      {format_cents(closure.opening_cash_cents)} {currency}")
    click.echo(f"  Cash in:           {format_cents(closure.cash_in_calculated_cents)} {currency}"
               f" ({closure.cash_transactions_count} transactions)")
    click.echo(f"  Cash out (manual): {format_cents(closure.cash_out_manual_cents)} {currency}")
    click.echo(f"  Expected:          {format_cents(closure.expected_cash_cents)} {currency}")
    click.echo(f"  Counted:           {format_cents(closure.counted_cash_cents)} {currency}")
    click.echo(f"  Delta:             {format_cents(closure.delta_cents)} {currency} ({closure.delta_status})")
    click.echo(f"  Closed by:         {closure.closed_by or 'N/A'}")
    if closure.note:
        click.echo(f"  Note:              {closure.note}")


@closures_group.command('cash-in')
@click.option('--date', 'day', default=None, help='Local date, YYYY-MM-DD (default today)')
@with_appcontext
def cash_in(day):
    """Show the cash receipts for a day."""
    target = _parse_date(day, '--date') or local_today(current_app.config["BUSINESS_TIMEZONE"])
    total, count = cash_closure_service.calculate_cash_in(target)
    click.echo(f"{target.isoformat()}: {format_cents(total)} {current_app.config.get('CURRENCY', 'CHF')} "
               f"from {count} cash transaction(s)")


@click.group('ledger')
def ledger_group():
    """Ledger maintenance commands."""


def _since_bound(since: str | None):
    day = _parse_date(since, '--since')
    if day is None:
        return None
    start, _ = local_range_bounds(day, day, current_app.config["BUSINESS_TIMEZONE"])
    return start


@ledger_group.command('backfill-history')
@click.option('--since', default=None, help='Only transactions from this local date, YYYY-MM-DD')
@with_appcontext
def backfill_history(since):
    """Regenerate missing client history entries from the ledger."""
    result = linkage_service.backfill_history(since=_since_bound(since), actor="cli")
    click.echo(
        f"Scanned {result['transactions_scanned']} linked transaction(s), "
        f"wrote {result['entries_written']} history entries."
    )
    for number in result["transactions_repaired"]:
        click.echo(f"  repaired {number}")


@ledger_group.command('verify-history')
@click.option('--since', default=None, help='Only transactions from this local date, YYYY-MM-DD')
@with_appcontext
def verify_history(since):
    """Compare client history with the ledger; exit 1 on drift."""
    report = linkage_service.verify_history(since=_since_bound(since))
    if report["ok"]:
        click.echo("PASS Client history matches the ledger.")
        return

    for entry in report["missing"]:
        click.echo(f"MISSING  {entry['transaction_number']} client={entry['client_id']} ({entry['action_type']})")
    for entry in report["mismatched"]:
        click.echo(
            f"MISMATCH {entry['transaction_number']} client={entry['client_id']} "
            f"stored={entry['stored_amount_cents']} expected={entry['expected_amount_cents']}"
        )
    for entry in report["orphans"]:
        click.echo(f"ORPHAN   history={entry['history_id']} client={entry['client_id']} tx={entry['transaction_id']}")
    raise SystemExit(1)


@click.group('clients')
def clients_group():
    """Client maintenance commands."""


@clients_group.command('refresh-independence')
@with_appcontext
def refresh_independence():
    """Mark dependents past the age threshold as independent."""
    changed = client_service.refresh_independence()
    if not changed:
        click.echo("No dependents reached the age threshold.")
        return
    for client in changed:
        click.echo(f"  {client.client_number} {client.full_name} is now independent")
    click.echo(f"PASS {len(changed)} client(s) updated.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(closures_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(clients_group)
