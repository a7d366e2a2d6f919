"""
Pytest fixtures for FreshPOS backend tests.

Provides the application on an in-memory database, a per-test clean
database, a test client and catalog factories.
"""

from datetime import timedelta

import pytest
from freshpos import create_app
from freshpos.extensions import db
from freshpos.services import catalog_service
from freshpos.time_utils import business_today


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'EXPIRY_WARNING_DAYS': 7,
    'DEFAULT_STOCK_ALERT_KG': '10.00',
    'STOCK_LOCK_TIMEOUT_SECONDS': 5,
    'DB_RETRY_ATTEMPTS': 3,
    'TOP_PRODUCTS_LIMIT': 10,
    'LOG_LEVEL': 'WARNING',
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
def today():
    return business_today()


@pytest.fixture(scope='function')
def make_category(db_session):
    """Factory: create a category by name."""
    def _make(name="Vegetables"):
        return catalog_service.create_category({"category_name": name})
    return _make


@pytest.fixture(scope='function')
def make_product(db_session, today):
    """
    Factory: create a product through the catalog so its opening stock is a
    ledger entry. Keyword arguments override the API payload.
    """
    def _make(**overrides):
        payload = {
            "type": "Tomatoes",
            "supplier": "Green Farm",
            "price": 150.00,
            "weight": 10.0,
            "stock_alert": 2.0,
            "expiry_date": (today + timedelta(days=30)).isoformat(),
        }
        payload.update(overrides)
        return catalog_service.create_product(payload)
    return _make
