"""
Pytest fixtures for receivables ledger tests.

Provides test database setup, two tenants, catalogue/customer factories
and a test client.
"""

import pytest
from app import create_app
from app.extensions import db
from app.models import Organization, Product, Customer


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Acme Corp", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(org, stock=10, unit_price_cents=1000, ...)."""
    counter = {"n": 0}

    def _make(org, *, stock=10, min_stock=2, unit_price_cents=1000, is_active=True, name=None):
        counter["n"] += 1
        product = Product(
            org_id=org.id,
            sku=f"SKU-{org.id}-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            stock=stock,
            min_stock=min_stock,
            unit_price_cents=unit_price_cents,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    """Factory: make_customer(org, credit_limit_cents=100000, ...)."""
    counter = {"n": 0}

    def _make(org, *, credit_limit_cents=100_000, current_debt_cents=0, is_active=True, name=None):
        counter["n"] += 1
        customer = Customer(
            org_id=org.id,
            name=name or f"Customer {counter['n']}",
            email=f"customer{counter['n']}@org{org.id}.test",
            credit_limit_cents=credit_limit_cents,
            current_debt_cents=current_debt_cents,
            is_active=is_active,
        )
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture(scope='function')
def product_a(org_a, make_product):
    """Product in Org A: stock 10, 10.00 each."""
    return make_product(org_a, stock=10, unit_price_cents=1000, name="Product A")


@pytest.fixture(scope='function')
def customer_a(org_a, make_customer):
    """Customer in Org A with a 1,000.00 credit line."""
    return make_customer(org_a, credit_limit_cents=100_000, name="Customer A")


@pytest.fixture(scope='function')
def tenant_headers():
    """Factory: trusted upstream headers carrying the tenant context."""
    def _headers(org, user_id: int = 1, role: str = "cashier") -> dict:
        return {
            'X-Org-ID': str(org.id),
            'X-User-ID': str(user_id),
            'X-User-Role': role,
        }

    return _headers
