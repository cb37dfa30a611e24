"""
Pytest fixtures for balance ledger tests.

Provides test database setup, tenant fixtures, and test client.
"""

import pytest

from ledger import create_app
from ledger.config import TestingConfig
from ledger.extensions import db
from ledger.models import CashAccount, Customer, Location, Supplier, Tenant


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

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
def tenant_a(db_session):
    """Create Tenant A (first tenant)."""
    tenant = Tenant(name="Tenant A - Acme Corp", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second tenant)."""
    tenant = Tenant(name="Tenant B - Beta Inc", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def location_a(db_session, tenant_a):
    location = Location(tenant_id=tenant_a.id, name="Main Store")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def location_b(db_session, tenant_b):
    location = Location(tenant_id=tenant_b.id, name="Beta Store")
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def customer_a(db_session, tenant_a):
    customer = Customer(tenant_id=tenant_a.id, name="Jane Buyer", email="jane@acme.test")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, tenant_b):
    customer = Customer(tenant_id=tenant_b.id, name="Bob Beta")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def supplier_a(db_session, tenant_a):
    supplier = Supplier(tenant_id=tenant_a.id, name="Wholesale SA", tax_id="30-12345678-9")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def treasury_a(db_session, tenant_a):
    """Empty treasury cash envelope in Tenant A."""
    account = CashAccount(tenant_id=tenant_a.id, name="Treasury", account_type="CASH")
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture(scope='function')
def bank_a(db_session, tenant_a):
    account = CashAccount(tenant_id=tenant_a.id, name="Bank", account_type="BANK")
    db_session.add(account)
    db_session.commit()
    return account


def context_headers(tenant_id: int, actor_id: int = 1, role: str = "ADMIN") -> dict:
    """Helper to create request-context headers."""
    return {
        'X-Tenant-Id': str(tenant_id),
        'X-Actor-Id': str(actor_id),
        'X-Actor-Role': role,
    }


@pytest.fixture(scope='function')
def admin_headers(tenant_a):
    return context_headers(tenant_a.id, actor_id=1, role="ADMIN")


@pytest.fixture(scope='function')
def cashier_headers(tenant_a):
    return context_headers(tenant_a.id, actor_id=2, role="CASHIER")


@pytest.fixture(scope='function')
def admin_headers_b(tenant_b):
    return context_headers(tenant_b.id, actor_id=9, role="ADMIN")


@pytest.fixture(scope='function')
def headers_for():
    """Build context headers for an arbitrary tenant / role."""
    return context_headers
