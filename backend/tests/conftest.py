"""
Pytest fixtures for sale engine tests.

Provides test database setup, two isolated businesses, stocked products,
an open shift, request contexts and a test client.
"""

import pytest
from app import create_app
from app.extensions import db
from app.models import Business, Product, Inventory, Shift
from app.services.context import RequestContext
from app.time_utils import utcnow


CASHIER_ID = 7
OTHER_CASHIER_ID = 8


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RESERVATION_TTL_HOURS': 4,
        'VOID_REASON_MIN_LENGTH': 5,
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
        app.extensions["sale_event_subscribers"] = []

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def business_a(db_session):
    """Business A (first tenant), no tax."""
    business = Business(name="Cafe A", code="CAFE-A", tenant_id="TA", tax_rate_bps=0, is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


@pytest.fixture(scope='function')
def business_b(db_session):
    """Business B (second tenant)."""
    business = Business(name="Bistro B", code="BISTRO-B", tenant_id="TB", tax_rate_bps=0, is_active=True)
    db_session.add(business)
    db_session.commit()
    return business


def make_product(db_session, business, *, sku, name, price_cents, stock, low_stock_alert=3):
    product = Product(business_id=business.id, sku=sku, name=name, price_cents=price_cents)
    db_session.add(product)
    db_session.flush()
    db_session.add(Inventory(
        product_id=product.id,
        business_id=business.id,
        current_stock=stock,
        low_stock_alert=low_stock_alert,
    ))
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_x(db_session, business_a):
    """Product X: 15.00, 10 in stock."""
    return make_product(db_session, business_a, sku="X-001", name="Product X", price_cents=1500, stock=10)


@pytest.fixture(scope='function')
def product_y(db_session, business_a):
    """Product Y: 3.50, 10 in stock."""
    return make_product(db_session, business_a, sku="Y-001", name="Product Y", price_cents=350, stock=10)


@pytest.fixture(scope='function')
def product_b(db_session, business_b):
    """Product in Business B."""
    return make_product(db_session, business_b, sku="B-001", name="Product B", price_cents=2000, stock=5)


@pytest.fixture(scope='function')
def shift(db_session, business_a):
    """Open shift for the default cashier with 100.00 float."""
    shift = Shift(
        business_id=business_a.id,
        user_id=CASHIER_ID,
        status="open",
        start_cash_cents=10000,
        opened_at=utcnow(),
    )
    db_session.add(shift)
    db_session.commit()
    return shift


@pytest.fixture(scope='function')
def ctx(business_a):
    return RequestContext(business_id=business_a.id, cashier_id=CASHIER_ID, tenant_id="TA")


@pytest.fixture(scope='function')
def shift_ctx(business_a, shift):
    return RequestContext(business_id=business_a.id, cashier_id=CASHIER_ID, tenant_id="TA", shift_id=shift.id)


@pytest.fixture(scope='function')
def ctx_b(business_b):
    return RequestContext(business_id=business_b.id, cashier_id=OTHER_CASHIER_ID, tenant_id="TB")


def get_stock(product) -> int:
    inv = db.session.query(Inventory).filter_by(product_id=product.id).one()
    db.session.refresh(inv)
    return inv.current_stock


def context_headers(business, user_id=CASHIER_ID, shift_id=None) -> dict:
    """Identity headers forwarded by the auth layer."""
    headers = {'X-Business-Id': str(business.id), 'X-User-Id': str(user_id)}
    if shift_id:
        headers['X-Shift-Id'] = str(shift_id)
    return headers
