"""
Pytest fixtures for Tubex backend tests.

Provides an in-memory database, two active supplier tenants with
warehouses, products and users, and login helpers for the test client.
"""

from decimal import Decimal

import pytest

from tubex import create_app
from tubex.extensions import db
from tubex.models import Company, Inventory, Product, User, Warehouse
from tubex.services.auth_service import hash_password


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'RATE_LIMIT_BACKEND': 'memory',
        'RATE_LIMIT_MAX_REQUESTS': 1000,
        'RATE_LIMIT_WINDOW_SECONDS': 60,
        'AUDIT_FAIL_CLOSED': False,
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
        app.extensions.pop("tubex.rate_limiters", None)

        yield db.session

        # Cleanup after test
        db.session.rollback()
        app.config['AUDIT_FAIL_CLOSED'] = False


@pytest.fixture(scope='function')
def company_a(db_session):
    """Company A (first tenant, supplier)."""
    company = Company(name="Company A - Acme Supply", type="supplier", status="active")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    """Company B (second tenant, supplier)."""
    company = Company(name="Company B - Beta Supply", type="supplier", status="active")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def dealer_c(db_session):
    """Company C (dealer tenant)."""
    company = Company(name="Company C - Corner Dealer", type="dealer", status="active")
    db_session.add(company)
    db_session.commit()
    return company


def make_warehouse(session, company, name):
    warehouse = Warehouse(company_id=company.id, name=name)
    session.add(warehouse)
    session.commit()
    return warehouse


@pytest.fixture(scope='function')
def warehouse_a1(db_session, company_a):
    return make_warehouse(db_session, company_a, "A Main")


@pytest.fixture(scope='function')
def warehouse_a2(db_session, company_a):
    return make_warehouse(db_session, company_a, "A Overflow")


@pytest.fixture(scope='function')
def warehouse_b1(db_session, company_b):
    return make_warehouse(db_session, company_b, "B Main")


@pytest.fixture(scope='function')
def product_a(db_session, company_a):
    """Product supplied by Company A."""
    product = Product(supplier_id=company_a.id, sku="PROD-A-001", name="Product A", unit="box")
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, company_b):
    """Product supplied by Company B."""
    product = Product(supplier_id=company_b.id, sku="PROD-B-001", name="Product B", unit="box")
    db_session.add(product)
    db_session.commit()
    return product


def make_inventory(session, company, warehouse, product, quantity="0", **fields):
    inventory = Inventory(
        company_id=company.id,
        warehouse_id=warehouse.id,
        product_id=product.id,
        quantity=Decimal(quantity),
        unit=product.unit,
        **fields,
    )
    session.add(inventory)
    session.commit()
    return inventory


@pytest.fixture(scope='function')
def inventory_a(db_session, company_a, warehouse_a1, product_a):
    """100 units of product A in A's main warehouse, auto reorder at 20."""
    return make_inventory(
        db_session,
        company_a,
        warehouse_a1,
        product_a,
        quantity="100",
        min_threshold=Decimal("25"),
        reorder_point=Decimal("20"),
        reorder_quantity=Decimal("200"),
        auto_reorder=True,
    )


@pytest.fixture(scope='function')
def inventory_b(db_session, company_b, warehouse_b1, product_b):
    return make_inventory(db_session, company_b, warehouse_b1, product_b, quantity="40")


def make_user(session, company, email, role="admin"):
    user = User(
        company_id=company.id,
        email=email,
        password_hash=hash_password(PASSWORD),
        role=role,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def user_a(db_session, company_a):
    """Admin of Company A."""
    return make_user(db_session, company_a, "admin@acme.test")


@pytest.fixture(scope='function')
def staff_a(db_session, company_a):
    """Staff member of Company A."""
    return make_user(db_session, company_a, "staff@acme.test", role="staff")


@pytest.fixture(scope='function')
def user_b(db_session, company_b):
    """Admin of Company B."""
    return make_user(db_session, company_b, "admin@beta.test")


def get_auth_token(client, company_id: int, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'company_id': company_id,
        'email': email,
        'password': password,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers_a(client, user_a):
    return auth_headers(get_auth_token(client, user_a.company_id, user_a.email))


@pytest.fixture(scope='function')
def headers_b(client, user_b):
    return auth_headers(get_auth_token(client, user_b.company_id, user_b.email))
