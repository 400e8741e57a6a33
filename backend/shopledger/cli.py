# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates the four roles and the admin employee
#   (ADMIN_EMPLOYEE_ID / ADMIN_PASSWORD).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Employees:
# - python -m flask employees create --username "Asha" --role biller --password "Password123!"
#   Create an employee; the employee id (e.g. BIL001) is allocated automatically.
# - python -m flask employees list
#
# Stock:
# - python -m flask stock replenish --product-id 3 --quantity 24 --note "Supplier delivery"
# - python -m flask stock verify
#   Recompute every product's stock from the ledger and report drift.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import User
from .services import employee_service, stock_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Seed roles and the bootstrap admin employee.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing ShopLedger...")

    roles = employee_service.ensure_roles()
    click.echo(f"PASS Roles ready: {', '.join(sorted(roles))}")

    admin_id = current_app.config["ADMIN_EMPLOYEE_ID"]
    existing = db.session.query(User).filter_by(employee_id=admin_id).first()
    if existing:
        click.echo(f"PASS Admin employee already exists: {admin_id}")
        return

    try:
        employee_service.create_employee(
            "Administrator",
            current_app.config["ADMIN_PASSWORD"],
            "admin",
            employee_id=admin_id,
        )
    except LedgerError as exc:
        raise click.ClickException(exc.message)
    click.echo(f"PASS Created admin employee: {admin_id}")


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


@click.group('employees')
def employees_group():
    """Employee inspection/bootstrap commands."""


@employees_group.command('create')
@click.option('--username', prompt=True, help='Display name')
@click.option('--role', type=click.Choice(['admin', 'manager', 'inventory', 'biller']), prompt=True, help='Role')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--mobile', default=None, help='Mobile number')
@with_appcontext
def create_employee_cli(username, role, password, mobile):
    """Create an employee with an allocated employee id."""
    try:
        user = employee_service.create_employee(username, password, role, mobile)
    except LedgerError as exc:
        raise click.ClickException(exc.message)
    click.echo(f"PASS Created {user.employee_id} ({role}) for {user.username}")


@employees_group.command('list')
@with_appcontext
def list_employees_cli():
    """List all employees with their roles."""
    employees = employee_service.list_employees()
    if not employees:
        click.echo("No employees found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Employee':<10} {'Name':<25} {'Role':<10} {'Active':<8}")
    click.echo("="*80)
    for user in employees:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.employee_id:<10} {user.username:<25} {user.role_name or '-':<10} {active_str:<8}")
    click.echo("="*80 + "\n")


@click.group('stock')
def stock_group():
    """Stock ledger commands."""


@stock_group.command('replenish')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--quantity', type=int, required=True, help='Units to add')
@click.option('--note', default=None, help='Entry note')
@click.option('--employee-id', default=None, help='Attribute the entry to this employee id')
@with_appcontext
def replenish_cli(product_id, quantity, note, employee_id):
    """Add stock to a product (appends a stock entry)."""
    actor_id = None
    if employee_id:
        user = db.session.query(User).filter_by(employee_id=employee_id.upper()).first()
        if user is None:
            raise click.ClickException(f"Unknown employee id: {employee_id}")
        actor_id = user.id
    try:
        stock_service.replenish(product_id, quantity, actor_id, note=note)
    except LedgerError as exc:
        raise click.ClickException(exc.message)
    product = stock_service.get_product(product_id)
    click.echo(f"PASS {product.name}: stock now {product.current_stock}")


@stock_group.command('verify')
@with_appcontext
def verify_stock_cli():
    """Report products whose current_stock disagrees with the ledger."""
    reports = stock_service.reconcile_all()
    drifted = [r for r in reports if r["drift"]]
    for report in drifted:
        click.echo(
            f"FAIL product {report['product_id']} ({report['name']}): "
            f"current={report['current_stock']} expected={report['expected_stock']} drift={report['drift']}"
        )
    click.echo(f"{'PASS' if not drifted else 'WARN'} Checked {len(reports)} products, {len(drifted)} with drift")
    if drifted:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(employees_group)
    app.cli.add_command(stock_group)
