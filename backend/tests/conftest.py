"""
Pytest fixtures for retailpos backend tests.

Provides test database setup, a branch with stock, operators with tokens,
cash registers and a test client.
"""

import pytest

from retailpos import create_app
from retailpos.extensions import db
from retailpos.models import Branch, Customer, CustomerGroup, Product, Warehouse
from retailpos.enums import PaymentMethod
from retailpos.services import inventory_service, ledger_service, permission_service, register_service
from retailpos.services.auth_service import create_user
from retailpos.services.pos_service import PosItem, PosSaleRequest
from retailpos.services.session_service import create_session


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'COGS_POSTING_ENABLED': True,
        'SETTLEMENT_RETRY_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def setup_roles(db_session):
    """Default roles, permissions and chart of accounts."""
    permission_service.create_default_roles()
    permission_service.initialize_permissions()
    permission_service.assign_default_role_permissions()
    ledger_service.ensure_default_accounts()
    db_session.commit()


@pytest.fixture(scope='function')
def branch(db_session):
    branch = Branch(name="Main Branch", code="MAIN", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def other_branch(db_session):
    branch = Branch(name="Harbour Branch", code="HARB", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def warehouse(db_session, branch):
    warehouse = Warehouse(branch_id=branch.id, name="Main Warehouse")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def product(db_session):
    """Sells for 100 cents; fallback cost 50 cents."""
    product = Product(sku="SKU-001", name="Notebook", price_cents=100, cost_cents=50, is_active=True)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session):
    """Sells for 150 cents, no cost on file."""
    product = Product(sku="SKU-002", name="Pen Set", price_cents=150, cost_cents=None, is_active=True)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def stocked(db_session, product, product_b, warehouse):
    """10 x product at 60 cents cost and 10 x product_b without cost."""
    inventory_service.receive_stock(
        product_id=product.id, warehouse_id=warehouse.id, quantity=10, unit_cost_cents=60
    )
    inventory_service.receive_stock(
        product_id=product_b.id, warehouse_id=warehouse.id, quantity=10
    )
    return warehouse


@pytest.fixture(scope='function')
def vip_customer(db_session):
    group = CustomerGroup(name="VIP", discount_percentage=10, is_active=True)
    db_session.add(group)
    db_session.flush()
    customer = Customer(name="Dana", group_id=group.id, is_active=True)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def admin_user(db_session, setup_roles, branch):
    return create_user("admin", "Password123!", email="admin@test.local", branch_id=branch.id, role_name="admin")


@pytest.fixture(scope='function')
def cashier_user(db_session, setup_roles, branch):
    return create_user("cashier", "Password123!", email="cashier@test.local", branch_id=branch.id, role_name="cashier")


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    _session, token = create_session(admin_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def cashier_headers(cashier_user):
    _session, token = create_session(cashier_user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def register(db_session, branch):
    return register_service.create_cash_register(branch.id, "Front Counter")


@pytest.fixture(scope='function')
def open_register(register, cashier_user):
    """Front Counter opened with 1000 cents."""
    register_service.open_register(register.id, cashier_user.id, opening_balance_cents=1000)
    return register


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def sale_request(branch, warehouse):
    """
    Factory for settlement requests against the main branch and warehouse.

    lines is a list of (product, quantity) or (product, quantity, discount_cents).
    """
    def _build(lines, **overrides) -> PosSaleRequest:
        items = tuple(
            PosItem(
                product_id=line[0].id,
                warehouse_id=warehouse.id,
                quantity=line[1],
                discount_cents=line[2] if len(line) > 2 else 0,
            )
            for line in lines
        )
        fields = {
            "items": items,
            "branch_id": branch.id,
            "payment_method": PaymentMethod.CASH,
            "paid_amount_cents": 0,
        }
        fields.update(overrides)
        return PosSaleRequest(**fields)
    return _build
