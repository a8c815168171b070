"""
Pytest fixtures for storefront backend tests.

Provides an in-memory test database, per-test table wipe, test client,
user/product factories, and a controllable payment gateway.
"""

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Product, User
from storefront.services import session_service
from storefront.services.auth_service import hash_password
from storefront.services.payment_gateway import GatewayResult, PaymentGateway


TEST_PASSWORD = "Password123"

SHIPPING_ADDRESS = {
    "name": "Asha Rao",
    "email": "asha@example.com",
    "phone": "9876543210",
    "address": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "zip_code": "560001",
    "country": "India",
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PAYMENT_GATEWAY_MIN_DELAY': 0,
        'PAYMENT_GATEWAY_MAX_DELAY': 0,
        'PAYMENT_GATEWAY_SEED': '7',
        'BCRYPT_ROUNDS': 4,
        'MERCHANT_UPI_ID': 'shop@okaxis',
        'MERCHANT_NAME': 'Test Shop',
        'ORDER_STATUS_STRICT': True,
        'ORDER_STATUS_NOTIFICATIONS': False,
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


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: make_user(email, is_admin=False) -> User"""
    def _make(email: str, *, is_admin: bool = False, name: str = "Test User") -> User:
        user = User(
            email=email,
            name=name,
            password_hash=hash_password(TEST_PASSWORD, rounds=4),
            is_admin=is_admin,
            is_active=True,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name, stock=10, price_cents=50000, ...) -> Product"""
    def _make(
        name: str = "Test Product",
        *,
        stock: int = 10,
        price_cents: int = 50000,
        category: str = "electronics",
        brand: str | None = "Acme",
        is_active: bool = True,
        low_stock_threshold: int = 5,
        rating: float = 0.0,
    ) -> Product:
        product = Product(
            name=name,
            category=category,
            brand=brand,
            original_price_cents=price_cents + 1000,
            sale_price_cents=price_cents,
            stock=stock,
            low_stock_threshold=low_stock_threshold,
            rating_average=rating,
            rating_count=10 if rating else 0,
            images=[f"/images/{name.lower().replace(' ', '-')}.jpg"],
            tags=[],
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def customer(make_user):
    return make_user("customer@example.com", name="Customer")


@pytest.fixture(scope='function')
def other_customer(make_user):
    return make_user("other@example.com", name="Other")


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("admin@example.com", is_admin=True, name="Admin")


def token_for(user: User) -> str:
    _, token = session_service.create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def customer_headers(customer):
    return auth_headers(token_for(customer))


@pytest.fixture(scope='function')
def other_headers(other_customer):
    return auth_headers(token_for(other_customer))


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(token_for(admin))


def order_payload(*items, payment_method: str = "upi", **address_overrides) -> dict:
    """order_payload((product_id, qty), ...) -> POST /api/orders body"""
    return {
        "items": [{"product_id": pid, "quantity": qty} for pid, qty in items],
        "shipping_address": {**SHIPPING_ADDRESS, **address_overrides},
        "payment_method": payment_method,
    }


# =============================================================================
# GATEWAY
# =============================================================================

class FixedGateway(PaymentGateway):
    """Returns the same outcome for every submission and records requests."""

    def __init__(self, status: str = "verified", message: str = "Payment verified"):
        self.result = GatewayResult(status, message)
        self.requests = []

    def submit(self, request):
        self.requests.append(request)
        return self.result


@pytest.fixture(scope='function')
def fixed_gateway(app, monkeypatch):
    """Install a FixedGateway on the app for the duration of a test."""
    gateway = FixedGateway()
    monkeypatch.setitem(app.extensions, "payment_gateway", gateway)
    return gateway
