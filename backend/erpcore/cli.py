# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/erpcore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: default branch and the common units (kg, pza, bulto, m3).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Branches:
# - python -m flask branches list
# - python -m flask branches create --code "MAT" --name "Materiales Centro"
# - python -m flask branches suppliers --branch-id 1
# - python -m flask branches add-supplier --branch-id 1 --name "Cementos del Norte"
# - python -m flask branches audit --branch-id 1 [--entity-type credit_note] [--limit 50]
#
# Units of measure:
# - python -m flask uoms list
# - python -m flask uoms create --code "lt" --name "Litro"
#
# Inventory inspection/maintenance:
# - python -m flask inventory stock --branch-id 1 [--low]
# - python -m flask inventory verify --branch-id 1
#   Replay every product's ledger and compare with the stored balance.
# - python -m flask inventory clear-purchases --branch-id 1 --actor "admin" --yes
#   Delete the branch's PURCHASE history and take back the stock it added.
#
# Credit inspection:
# - python -m flask credit customers --branch-id 1
# - python -m flask credit summary --customer-id 1

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Uom
from .services import audit_service, branch_service, catalog_service, credit_service, inventory_service
from .validation import CoreError


DEFAULT_UOMS = (
    ("kg", "Kilogramo"),
    ("pza", "Pieza"),
    ("bulto", "Bulto"),
    ("m3", "Metro cubico"),
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--branch-code', default='MAIN', help='Default branch code')
@click.option('--branch-name', default='Sucursal Principal', help='Default branch name')
@with_appcontext
def init_system(branch_code, branch_name):
    """Create the default branch and units if they are missing."""
    click.echo("START Initializing...")
    db.create_all()

    branch = db.session.query(Branch).filter_by(code=branch_code).first()
    if branch is None:
        branch = branch_service.create_branch(branch_code, branch_name)
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"SKIP Branch {branch_code} already exists (ID: {branch.id})")

    for code, name in DEFAULT_UOMS:
        if db.session.query(Uom).filter_by(code=code).first():
            continue
        uom = catalog_service.create_uom(code, name)
        click.echo(f"PASS Created unit: {uom.code} (ID: {uom.id})")

    click.echo("DONE")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# BRANCHES & UNITS
# =============================================================================

@click.group('branches')
def branches_group():
    """Branch management commands."""


@branches_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive branches')
@with_appcontext
def list_branches_cli(include_inactive):
    branches = branch_service.list_branches(include_inactive=include_inactive)
    if not branches:
        click.echo("No branches found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Code':<12} {'Name':<40} {'Active'}")
    click.echo("="*70)
    for b in branches:
        click.echo(f"{b.id:<5} {b.code:<12} {b.name:<40} {'Yes' if b.is_active else 'No'}")
    click.echo("="*70 + "\n")


@branches_group.command('create')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--name', required=True, help='Branch name')
@click.option('--address', default=None)
@with_appcontext
def create_branch_cli(code, name, address):
    try:
        branch = branch_service.create_branch(code, name, address)
    except CoreError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}, Code: {branch.code})")


@branches_group.command('suppliers')
@click.option('--branch-id', type=int, required=True)
@with_appcontext
def list_suppliers_cli(branch_id):
    suppliers = branch_service.list_suppliers(branch_id)
    if not suppliers:
        click.echo("No suppliers found.")
        return
    for s in suppliers:
        click.echo(f"{s.id:<5} {s.name:<40} {s.phone or ''}")


@branches_group.command('add-supplier')
@click.option('--branch-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--phone', default=None)
@click.option('--email', default=None)
@with_appcontext
def add_supplier_cli(branch_id, name, phone, email):
    try:
        supplier = branch_service.create_supplier(branch_id, name, phone=phone, email=email)
    except CoreError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created supplier: {supplier.name} (ID: {supplier.id})")


@branches_group.command('audit')
@click.option('--branch-id', type=int, required=True)
@click.option('--entity-type', default=None, help='e.g. inventory_transaction, credit_note')
@click.option('--limit', type=int, default=50)
@with_appcontext
def audit_cli(branch_id, entity_type, limit):
    """Most recent audit events of a branch, newest first."""
    events = audit_service.list_audit_events(branch_id=branch_id, entity_type=entity_type, limit=limit)
    if not events:
        click.echo("No audit events found.")
        return
    for ev in events:
        click.echo(f"{ev.id:<6} {ev.event_type:<36} {ev.entity_type}:{ev.entity_id:<8} {ev.actor_id:<16} {ev.note or ''}")


@click.group('uoms')
def uoms_group():
    """Unit of measure commands."""


@uoms_group.command('list')
@with_appcontext
def list_uoms_cli():
    uoms = catalog_service.list_uoms()
    if not uoms:
        click.echo("No units found.")
        return
    for u in uoms:
        click.echo(f"{u.id:<5} {u.code:<10} {u.name}")


@uoms_group.command('create')
@click.option('--code', required=True)
@click.option('--name', required=True)
@with_appcontext
def create_uom_cli(code, name):
    try:
        uom = catalog_service.create_uom(code, name)
    except CoreError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created unit: {uom.code} (ID: {uom.id})")


# =============================================================================
# INVENTORY
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Inventory inspection and maintenance commands."""


@inventory_group.command('stock')
@click.option('--branch-id', type=int, required=True)
@click.option('--low', is_flag=True, help='Only products below min stock')
@with_appcontext
def stock_cli(branch_id, low):
    if low:
        rows = inventory_service.list_low_stock(branch_id)
        if not rows:
            click.echo("No products below minimum stock.")
            return
        for row in rows:
            click.echo(f"{row['product_id']:<6} {row['name']:<40} {row['qty_base']:>14} / min {row['min_stock']}")
        return

    balances = inventory_service.list_stock_by_branch(branch_id)
    if not balances:
        click.echo("No stock rows found.")
        return
    click.echo(f"{'Product':<10} {'Qty (base)':>16}")
    for b in balances:
        click.echo(f"{b.product_id:<10} {str(b.qty_base):>16}")


@inventory_group.command('verify')
@click.option('--branch-id', type=int, required=True)
@with_appcontext
def verify_cli(branch_id):
    """Exit code 1 when any product drifted from its ledger."""
    report = inventory_service.verify_stock_balances(branch_id)
    failures = [r for r in report if not r["ok"]]

    for r in report:
        status = "PASS" if r["ok"] else "FAIL"
        click.echo(
            f"{status} product {r['product_id']}: ledger={r['ledger_qty']} "
            f"stored={r['stored_qty']} lowest={r['lowest_running_qty']}"
        )

    click.echo(f"{len(report)} products checked, {len(failures)} failing.")
    if failures:
        raise SystemExit(1)


@inventory_group.command('clear-purchases')
@click.option('--branch-id', type=int, required=True)
@click.option('--actor', required=True, help='Actor id recorded in the audit trail')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def clear_purchases_cli(branch_id, actor, yes):
    """
    DANGER: Delete all PURCHASE transactions of a branch.

    Fails without changes if any of that stock was already sold.
    """
    if not yes:
        click.confirm(f"WARN This will delete the purchase history of branch {branch_id}. Continue?", abort=True)
    try:
        result = inventory_service.clear_purchase_history(branch_id, actor_id=actor)
    except CoreError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Deleted {result['deleted']} purchase transactions.")


# =============================================================================
# CREDIT
# =============================================================================

@click.group('credit')
def credit_group():
    """Credit customer inspection commands."""


@credit_group.command('customers')
@click.option('--branch-id', type=int, required=True)
@with_appcontext
def list_customers_cli(branch_id):
    customers = credit_service.list_customers_by_branch(branch_id)
    if not customers:
        click.echo("No credit customers found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<35} {'Limit':>12} {'Days':>5} {'Policy':<16} {'Cash'}")
    click.echo("="*90)
    for c in customers:
        limit = c.credit_limit_cents / 100
        click.echo(
            f"{c.id:<5} {c.name:<35} {limit:>12.2f} {c.default_credit_days:>5} "
            f"{c.policy:<16} {'Yes' if c.allow_cash_if_blocked else 'No'}"
        )
    click.echo("="*90 + "\n")


@credit_group.command('summary')
@click.option('--customer-id', type=int, required=True)
@with_appcontext
def customer_summary_cli(customer_id):
    try:
        summary = credit_service.get_customer_summary(customer_id)
    except CoreError as e:
        click.echo(f"FAIL {e}")
        return

    customer = summary["customer"]
    click.echo(f"{customer['name']} (limit {customer['credit_limit_cents'] / 100:.2f})")
    click.echo(
        f"Balance {summary['balance_cents'] / 100:.2f}  "
        f"Overdue {summary['overdue_cents'] / 100:.2f}  "
        f"Available {summary['available_cents'] / 100:.2f}"
    )
    for note in summary["notes"]:
        overdue = f" ({note['days_overdue']}d)" if note["status"] == "VENCIDA" else ""
        click.echo(
            f"  {note['folio']:<24} due {note['due_date']}  "
            f"{note['balance_cents'] / 100:>10.2f}  {note['status']}{overdue}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(branches_group)
    app.cli.add_command(uoms_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(credit_group)
