"""
Pytest fixtures for scanpos backend tests.

Each test gets a fresh app (in-memory SQLite, in-memory scan queue, outbox
receipts), so carts and queued scans never leak between tests.
"""

from decimal import Decimal

import pytest
from scanpos import create_app
from scanpos.extensions import db, get_scan_queue, get_receipts, get_cart_registry
from scanpos.models import Product


TEST_CONFIG = {
    'TESTING': True,
    'SECRET_KEY': 'test',
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'SCAN_QUEUE_BACKEND': 'memory',
    'RECEIPT_BACKEND': 'outbox',
    'CORS_ALLOWED_ORIGINS': ['*'],
    'LOG_LEVEL': 'DEBUG',
}


@pytest.fixture
def app_config():
    return dict(TEST_CONFIG)


@pytest.fixture(scope='function')
def app(app_config):
    """Create application for testing."""
    app = create_app(app_config)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    yield db.session
    db.session.rollback()


@pytest.fixture
def scan_queue(app):
    return get_scan_queue()


@pytest.fixture
def outbox(app):
    """Messages captured by the outbox receipt sender."""
    return get_receipts().sender.messages


@pytest.fixture
def carts(app):
    return get_cart_registry()


@pytest.fixture
def products(db_session):
    """A small catalogue: two items in stock, one sold out."""
    rows = [
        Product(id="RAPIDENE-001", product_code="RAP001", name="Rapidene Tablets",
                category="Pharmacy", price=Decimal("150.00"), wholesale_price=Decimal("120.00"), quantity=10),
        Product(id="MILK-1L", product_code="MILK1L", name="Fresh Milk 1L",
                category="Dairy", price=Decimal("450.00"), wholesale_price=Decimal("380.00"), quantity=3),
        Product(id="BREAD-01", product_code="BRD01", name="Sandwich Bread",
                category="Bakery", price=Decimal("220.00"), wholesale_price=Decimal("180.00"), quantity=0),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return {p.id: p for p in rows}


@pytest.fixture
def session_headers():
    return {"X-Session-Id": "operator-session-1"}
