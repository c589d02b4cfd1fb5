# Overview: Flask CLI command groups for bootstrap and setup.

# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent bootstrap: tables, roles, permissions, chart of accounts,
#   default branch + warehouse and default users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Branches:
# - python -m flask branches create --name "Downtown" --code DT --warehouse "Back Room"
#
# Users:
# - python -m flask users create --username alice --email alice@shop.local --password "Password123!" --role cashier --branch-id 1
#
# Cash registers:
# - python -m flask registers create --branch-id 1 --name "Front Counter"
# - python -m flask registers list [--branch-id 1]
#
# Stock:
# - python -m flask stock receive --product-id 1 --warehouse-id 1 --quantity 50 --unit-cost-cents 700

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Product, User, Warehouse
from .services import inventory_service, ledger_service, permission_service, register_service
from .services.auth_service import create_user, PasswordValidationError
from .validation import NotFoundError, PreconditionError, ValidationError


CLI_ERRORS = (ValidationError, PreconditionError, NotFoundError)


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the POS backend.

    Creates:
    - All tables
    - Roles (admin, manager, cashier) and their permissions
    - Chart of accounts used by sale settlement
    - Default branch "Main Branch" with warehouse "Main Warehouse"
    - Users admin/manager/cashier, password "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing POS backend...")
    db.create_all()

    created_roles = permission_service.create_default_roles()
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS {created_roles} roles, {perm_count} permissions, {assignment_count} role assignments created")

    account_count = ledger_service.ensure_default_accounts()
    db.session.commit()
    click.echo(f"PASS {account_count} ledger accounts created")

    branch = db.session.query(Branch).filter_by(code="MAIN").first()
    if not branch:
        branch = Branch(name="Main Branch", code="MAIN", is_active=True)
        db.session.add(branch)
        db.session.flush()
        db.session.add(Warehouse(branch_id=branch.id, name="Main Warehouse"))
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    default_password = "Password123!"
    for username, role_name in (("admin", "admin"), ("manager", "manager"), ("cashier", "cashier")):
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        create_user(
            username,
            default_password,
            email=f"{username}@retailpos.local",
            branch_id=branch.id,
            role_name=role_name,
        )
        click.echo(f"PASS Created user: {username} with role '{role_name}'")

    click.echo("\nDONE POS backend initialized")
    click.echo("   Default credentials (CHANGE IN PRODUCTION!): admin / manager / cashier, Password123!")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm dropping all data')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('branches')
def branches_group():
    """Branch setup commands."""


@branches_group.command('create')
@click.option('--name', required=True, help='Branch name')
@click.option('--code', required=True, help='Short unique code')
@click.option('--warehouse', 'warehouse_name', default='Main Warehouse', help='Name of the first warehouse')
@with_appcontext
def create_branch_cli(name, code, warehouse_name):
    """Create a branch together with its first warehouse."""
    if db.session.query(Branch).filter_by(code=code).first():
        click.echo(f"FAIL Branch with code '{code}' already exists")
        return

    branch = Branch(name=name, code=code, is_active=True)
    db.session.add(branch)
    db.session.flush()
    warehouse = Warehouse(branch_id=branch.id, name=warehouse_name)
    db.session.add(warehouse)
    db.session.commit()

    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}, Code: {branch.code})")
    click.echo(f"   Warehouse: {warehouse.name} (ID: {warehouse.id})")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', default=None, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'manager', 'cashier']), prompt=True, help='Role')
@click.option('--branch-id', type=int, default=None, help='Home branch')
@with_appcontext
def create_user_cli(username, email, password, role, branch_id):
    """
    Create a new operator.

    Password must be 8+ chars with uppercase, lowercase, digit and special char.
    """
    try:
        user = create_user(username, password, email=email, branch_id=branch_id, role_name=role)
        click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except CLI_ERRORS as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {str(e)}")


@click.group('registers')
def registers_group():
    """Cash register setup and inspection commands."""


@registers_group.command('create')
@click.option('--branch-id', type=int, required=True, help='Branch ID')
@click.option('--name', required=True, help='Register name (unique per branch)')
@click.option('--description', default=None, help='Description')
@with_appcontext
def create_register_cli(branch_id, name, description):
    """
    Create a new cash register (starts closed).

    Example:
        flask registers create --branch-id 1 --name "Front Counter"
    """
    try:
        register = register_service.create_cash_register(branch_id, name, description)
        click.echo(f"PASS Created cash register: {register.name} (ID: {register.id}, Branch: {register.branch_id})")
    except CLI_ERRORS as e:
        db.session.rollback()
        click.echo(f"FAIL Error: {str(e)}")


@registers_group.command('list')
@click.option('--branch-id', type=int, help='Filter by branch ID')
@with_appcontext
def list_registers_cli(branch_id):
    """List cash registers with status and balance."""
    registers = register_service.list_cash_registers(branch_id=branch_id)

    if not registers:
        click.echo("No cash registers found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Branch':<8} {'Name':<25} {'Status':<12} {'Balance (cents)'}")
    click.echo("="*80)
    for register in registers:
        click.echo(
            f"{register.id:<5} {register.branch_id:<8} {register.name:<25} "
            f"{register.status:<12} {register.current_balance_cents}"
        )
    click.echo("="*80 + "\n")


@click.group('stock')
def stock_group():
    """Stock receipt commands."""


@stock_group.command('receive')
@click.option('--product-id', type=int, required=True, help='Product ID')
@click.option('--warehouse-id', type=int, required=True, help='Warehouse ID')
@click.option('--quantity', type=int, required=True, help='Units received')
@click.option('--unit-cost-cents', type=int, default=None, help='Purchase cost per unit in cents')
@click.option('--note', default=None, help='Free-text note')
@with_appcontext
def receive_stock_cli(product_id, warehouse_id, quantity, unit_cost_cents, note):
    """Receive stock into a warehouse (feeds weighted average cost)."""
    try:
        movement = inventory_service.receive_stock(
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            note=note,
        )
        product = db.session.get(Product, product_id)
        available = inventory_service.get_available_quantity(product_id, warehouse_id)
        click.echo(f"PASS Received {movement.quantity} x {product.name} into warehouse {warehouse_id}")
        click.echo(f"   Available now: {available}")
    except CLI_ERRORS as e:
        click.echo(f"FAIL Error: {str(e)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(branches_group)
    app.cli.add_command(users_group)
    app.cli.add_command(registers_group)
    app.cli.add_command(stock_group)
