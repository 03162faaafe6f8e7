"""
Pytest fixtures for BakeSewa backend tests.

Provides an in-memory database, the seeded unit catalog, sample inventory
items and a test client.
"""

from decimal import Decimal

import pytest

from bakesewa import create_app
from bakesewa.extensions import db
from bakesewa.models import InventoryItem
from bakesewa.services.unit_service import get_unit_catalog, seed_default_units


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UNIT_CACHE_TTL_SECONDS': 0,
        'STOCK_RETRY_ATTEMPTS': 3,
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
        # Clear all data but keep schema; core deletes bypass the audit guard
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        app.extensions["unit_catalog"].invalidate()
        app.extensions["security_monitor"].reset()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def units(db_session):
    """Seed default units; returns {abbreviation: unit_id}."""
    seed_default_units()
    return {u.abbreviation: u.id for u in get_unit_catalog().get_units()}


def make_item(name, unit_id, *, opening_stock="0", cost_per_unit="0", min_level="0", code=None):
    item = InventoryItem(
        code=code,
        name=name,
        current_stock=Decimal(opening_stock),
        opening_stock=Decimal(opening_stock),
        purchased_quantity=Decimal("0"),
        consumed_quantity=Decimal("0"),
        closing_stock=Decimal(opening_stock),
        min_level=Decimal(min_level),
        primary_unit_id=unit_id,
        conversion_rate=Decimal("1"),
        cost_per_unit=Decimal(cost_per_unit),
    )
    db.session.add(item)
    db.session.commit()
    return item


@pytest.fixture(scope='function')
def flour(db_session, units):
    """Flour stocked in kilograms, 50 kg on hand at 2.50."""
    return make_item("Flour", units["kg"], opening_stock="50", cost_per_unit="2.50", min_level="10", code="FLR")


@pytest.fixture(scope='function')
def butter(db_session, units):
    """Butter stocked in kilograms, empty."""
    return make_item("Butter", units["kg"], code="BTR")


def actor_headers(user_id="u-1", email="baker@bakesewa.com", name="Head Baker") -> dict:
    """Helper to attribute requests to a user."""
    return {'X-User-Id': user_id, 'X-User-Email': email, 'X-User-Name': name}
