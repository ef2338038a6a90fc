"""
Pytest fixtures for back-office backend tests.

Provides test database setup, catalog/stock factories, and test client.
"""

from decimal import Decimal

import pytest
from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Client, CompanySetting, InventoryRecord, Product
from backoffice.services.identifier_service import new_id


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
def make_product(db_session):
    """Factory: product with optional per-location stock, committed."""
    counter = {"n": 0}

    def _make(name="Widget", sale_price="10.00", stock=None, sku=None):
        counter["n"] += 1
        product = Product(
            id=new_id(),
            sku=sku or f"SKU-{counter['n']:03d}",
            name=name,
            sale_price=Decimal(sale_price) if sale_price is not None else None,
            cost_price=Decimal("4.00"),
        )
        db_session.add(product)
        db_session.flush()
        for location, quantity in (stock or {}).items():
            db_session.add(InventoryRecord(
                id=new_id(), product_id=product.id, location=location, quantity=quantity,
            ))
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_client(db_session):
    def _make(name="Acme Retail", balance="0.00", **fields):
        row = Client(
            id=new_id(),
            name=name,
            current_account_balance=Decimal(balance),
            **fields,
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _make


@pytest.fixture(scope='function')
def tax_rate(db_session):
    """Company settings with 21% VAT."""
    row = CompanySetting(company_name="Test Co", tax_rate=Decimal("0.21"))
    db_session.add(row)
    db_session.commit()
    return row


def stock_by_location(product_id) -> dict:
    rows = db.session.query(InventoryRecord).filter_by(product_id=product_id).all()
    return {row.location: row.quantity for row in rows}


@pytest.fixture(scope='function')
def stock(db_session):
    """Current {location: quantity} for a product."""
    return stock_by_location
