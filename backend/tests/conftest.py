"""
Pytest fixtures for the procurement backend tests.

Provides the test application, a fresh database per test, staff/catalog
fixtures and helpers that drive an order through its lifecycle.
"""

import pytest
from datetime import timedelta

from procure import create_app
from procure.extensions import db
from procure.models import Product, Staff, Supplier
from procure.models.staff import ROLE_ADMIN, ROLE_STAFF
from procure.services import order_service
from procure.time_utils import utcnow


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'EXPIRATION_SWEEP_ENABLED': False,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('uploads')),
        'CLIENT_ORIGIN': 'http://dashboard.test',
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
def admin(db_session):
    staff = Staff(fullname="Ada Admin", email="admin@procure.test", role=ROLE_ADMIN)
    db_session.add(staff)
    db_session.commit()
    return staff


@pytest.fixture(scope='function')
def buyer(db_session):
    """Non-admin staff member S1."""
    staff = Staff(fullname="Sam Buyer", email="s1@procure.test", role=ROLE_STAFF)
    db_session.add(staff)
    db_session.commit()
    return staff


@pytest.fixture(scope='function')
def other_buyer(db_session):
    """Non-admin staff member S2."""
    staff = Staff(fullname="Kim Buyer", email="s2@procure.test", role=ROLE_STAFF)
    db_session.add(staff)
    db_session.commit()
    return staff


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Fresh Farms", contact_person="Jo", email="sales@farms.test")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def product_x(db_session):
    product = Product(name="Milk", unit="liter", current_stock=0, min_qty=0)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_y(db_session):
    product = Product(name="Flour", unit="kilogram", current_stock=0, min_qty=0)
    db_session.add(product)
    db_session.commit()
    return product


def staff_headers(staff) -> dict:
    """Helper to create caller identity headers."""
    return {'X-Staff-Id': str(staff.id)}


def reload(obj):
    """Re-read an instance after writes made through statements or other sessions."""
    db.session.refresh(obj)
    return obj


def create_verified_order(supplier, buyer, admin, items):
    """Drive a new order through assign, submit-review and verify."""
    order = order_service.create_order(supplier_id=supplier.id, items=items)
    order_service.assign_order(order.id, buyer.id)
    order_service.submit_for_review(order.id, bill_url="/uploads/orders/bill.png", submitted_by_staff_id=buyer.id)
    return order_service.verify_order(order.id, verified_by_staff_id=admin.id)


def days_ago(days: int):
    return utcnow() - timedelta(days=days)


def days_ahead(days: int):
    return utcnow() + timedelta(days=days)
