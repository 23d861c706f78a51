"""
Pytest fixtures for storefront backend tests.

Provides a fresh app + in-memory database + key-value store per test,
customer/auth fixtures, and factories for products, cart lines and promo codes.
"""

import itertools

import pytest
from sqlalchemy.pool import StaticPool

from storefront import create_app
from storefront.extensions import db
from storefront.kv_store import MemoryStore
from storefront.models import CartLine, Customer, Role
from storefront.models.cart import CART_TYPE_REGULAR
from storefront.services import products_service, promotions_service, token_service
from storefront.services.auth_service import CUSTOMER_ROLE_SLUG, ensure_default_roles, hash_password


TEST_PASSWORD = "Password123!"

SHIPPING = {
    "address": "12 Harbour Road",
    "city": "Portland",
    "state": "OR",
    "zip_code": "97201",
    "country": "US",
}

_sequence = itertools.count(1)


@pytest.fixture
def kv_store():
    return MemoryStore()


@pytest.fixture
def app(kv_store):
    """Create application for testing."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'SQLALCHEMY_ENGINE_OPTIONS': {
                'connect_args': {'check_same_thread': False},
                'poolclass': StaticPool,
            },
            'JWT_SECRET_KEY': 'test-jwt-secret',
            'EXPOSE_OTP_IN_RESPONSE': True,
        },
        kv_store=kv_store,
    )

    with app.app_context():
        db.create_all()
        ensure_default_roles()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def make_customer(app):
    def _make(email=None, username=None, full_name="Jane Doe", password=TEST_PASSWORD, **overrides):
        n = next(_sequence)
        role = db.session.query(Role).filter_by(slug=CUSTOMER_ROLE_SLUG).one()
        customer = Customer(
            full_name=full_name,
            username=username or f"customer{n}",
            email=email or f"customer{n}@example.com",
            phone="+15550100",
            password_hash=hash_password(password),
            role_id=role.id,
            **overrides,
        )
        db.session.add(customer)
        db.session.commit()
        return customer
    return _make


@pytest.fixture
def customer(make_customer):
    return make_customer(email="jane@example.com", username="jane")


@pytest.fixture
def tokens(customer):
    return token_service.issue_tokens(customer)


@pytest.fixture
def auth_headers(tokens):
    return {"Authorization": f"Bearer {tokens.access_token}"}


@pytest.fixture
def headers_for(app):
    """Build auth headers for any customer."""
    def _headers(customer) -> dict:
        issued = token_service.issue_tokens(customer)
        return {"Authorization": f"Bearer {issued.access_token}"}
    return _headers


@pytest.fixture
def shipping():
    return dict(SHIPPING)


@pytest.fixture
def make_product(app):
    def _make(**overrides):
        n = next(_sequence)
        patch = {
            "title": f"Widget {n}",
            "sku": f"SKU-{n}",
            "price_cents": 1000,
            "tax_rate_bps": 0,
            "stock_quantity": 10,
        }
        patch.update(overrides)
        return products_service.create_product(patch)
    return _make


@pytest.fixture
def product(make_product):
    return make_product(title="Widget", price_cents=1000, stock_quantity=10)


@pytest.fixture
def add_cart_line(app):
    """Insert a cart line directly, bypassing cart_service stock checks."""
    def _add(customer, product, quantity=1, line_type=CART_TYPE_REGULAR, **fields):
        line = CartLine(
            customer_id=customer.id,
            product_id=product.id,
            quantity=quantity,
            type=line_type,
            is_active=True,
            **fields,
        )
        db.session.add(line)
        db.session.commit()
        return line
    return _add


@pytest.fixture
def make_promo(app):
    def _make(code="SAVE10", discount_type="PERCENTAGE", discount_value=1000, **fields):
        data = {"code": code, "discount_type": discount_type, "discount_value": discount_value}
        data.update(fields)
        return promotions_service.create_promo_code(data)
    return _make
