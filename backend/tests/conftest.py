"""
Pytest fixtures for stock ledger tests.

Provides test database setup, stock-tracked and untracked categories,
a supplier, a pending receipt, and serialized products.
"""

import pytest

from stockledger import create_app
from stockledger.config import TestConfig
from stockledger.extensions import db, get_cache
from stockledger.models import Supplier
from stockledger.services import category_service, receiving_service, products_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        get_cache().clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def cache(db_session):
    return get_cache()


@pytest.fixture(scope='function')
def net_category(db_session):
    """Stock-tracked network cable, 25 meters on hand, reorder at 10."""
    return category_service.create_category(
        name="Network Cable",
        code="NET",
        has_stock=True,
        min_stock=10,
        max_stock=100,
        reorder_point=10,
        unit="meter",
        opening_stock=25,
        actor="tester",
    )


@pytest.fixture(scope='function')
def ton_category(db_session):
    """Stock-tracked toner with little stock left."""
    return category_service.create_category(
        name="Toner",
        code="TON",
        has_stock=True,
        min_stock=2,
        max_stock=20,
        reorder_point=2,
        unit="piece",
        opening_stock=3,
        actor="tester",
    )


@pytest.fixture(scope='function')
def fur_category(db_session):
    """Furniture: serialized assets only, no stock tracking."""
    return category_service.create_category(name="Furniture", code="FUR", has_stock=False)


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Acme Supplies", contact_person="Jane Doe", email="sales@acme.test")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def pending_receipt(db_session, supplier):
    """Empty receipt that still accepts lines."""
    receipt, _ = receiving_service.create_receipt(
        supplier_id=supplier.id,
        actor="tester",
        po_number="PO-1001",
        status=receiving_service.STATUS_PENDING,
    )
    return receipt


@pytest.fixture(scope='function')
def fur_products(db_session, fur_category):
    """Two available furniture assets: FUR001 and FUR002."""
    return [
        products_service.create_product(category_id=fur_category.id, brand="Ikea", model="Desk", location="Storage"),
        products_service.create_product(category_id=fur_category.id, brand="Ikea", model="Chair", location="Storage"),
    ]
