"""
Pytest fixtures for ShopLedger backend tests.

Provides the test database, seeded roles/employees/products, and
authenticated test-client helpers.
"""

import pytest
from shopledger import create_app
from shopledger.extensions import db
from shopledger.services import employee_service, stock_service


PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'COMPANY_PHONE': '',
    'STRICT_BILL_TOTALS': True,
    'SEQUENCE_RETRY_ATTEMPTS': 3,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
    return employee_service.ensure_roles()


@pytest.fixture(scope='function')
def admin_user(setup_roles):
    return employee_service.create_employee("Admin", PASSWORD, "admin")


@pytest.fixture(scope='function')
def manager_user(setup_roles):
    return employee_service.create_employee("Manager", PASSWORD, "manager")


@pytest.fixture(scope='function')
def inventory_user(setup_roles):
    return employee_service.create_employee("Stock Keeper", PASSWORD, "inventory")


@pytest.fixture(scope='function')
def biller_user(setup_roles):
    return employee_service.create_employee("Counter One", PASSWORD, "biller")


@pytest.fixture(scope='function')
def make_product(admin_user):
    """Factory: make_product(name, price_cents, stock, **extra) -> Product."""
    def _make(name="Soap", price_cents=5000, stock=5, brand="Acme", **extra):
        payload = {"name": name, "brand": brand, "unit_price_cents": price_cents, "opening_stock": stock}
        payload.update(extra)
        return stock_service.create_product(payload, actor_id=admin_user.id)
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Product with 5 units in stock at 50.00."""
    return make_product()


def get_auth_token(client, employee_id: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for an employee."""
    response = client.post('/api/v1/auth/login', json={
        'employee_id': employee_id,
        'password': password,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def bill_payload(lines, *, discount=0, gst=0, payment_mode="CASH", **extra) -> dict:
    """
    Build create_bill kwargs from [(product, quantity), ...] using current prices.
    """
    items = [{"product_id": p.id, "quantity": q} for p, q in lines]
    total = sum(p.unit_price_cents * q for p, q in lines)
    payload = {
        "items": items,
        "payment_mode": payment_mode,
        "totals": {
            "total_amount_cents": total,
            "discount_amount_cents": discount,
            "gst_amount_cents": gst,
            "net_payable_cents": total - discount + gst,
        },
    }
    payload.update(extra)
    return payload


@pytest.fixture(scope='function')
def build_bill():
    return bill_payload


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.employee_id))


@pytest.fixture(scope='function')
def manager_headers(client, manager_user):
    return auth_headers(get_auth_token(client, manager_user.employee_id))


@pytest.fixture(scope='function')
def inventory_headers(client, inventory_user):
    return auth_headers(get_auth_token(client, inventory_user.employee_id))


@pytest.fixture(scope='function')
def biller_headers(client, biller_user):
    return auth_headers(get_auth_token(client, biller_user.employee_id))
