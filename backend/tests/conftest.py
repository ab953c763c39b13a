"""
Pytest fixtures for OrderEase backend tests.

Provides an in-memory database, a test client, and shop / operator /
customer / product fixtures plus principals for calling services directly.
"""

from datetime import timedelta

import pytest

from orderease import create_app
from orderease.extensions import db
from orderease.models import Operator, Option, OptionCategory, Product, Shop, User
from orderease.passwords import hash_password
from orderease.services.auth_service import (
    CustomerPrincipal,
    OperatorPrincipal,
    ShopOwnerPrincipal,
)
from orderease.services.flow_service import default_flow, flow_cache
from orderease.time_utils import utcnow

TEST_SECRET = "test-secret-key-for-orderease"
OPERATOR_PASSWORD = "Password123!"
OWNER_PASSWORD = "Owner123!"
CUSTOMER_PASSWORD = "secret12"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'JWT_SECRET': TEST_SECRET,
        'BCRYPT_ROUNDS': 4,
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
        flow_cache.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def operator(db_session):
    """Create the back-office operator."""
    op = Operator(username="admin", password_hash=hash_password(OPERATOR_PASSWORD))
    db_session.add(op)
    db_session.commit()
    return op


def make_shop(db_session, name="Corner Cafe", owner="cafe", days=30):
    shop = Shop(
        name=name,
        owner_username=owner,
        owner_password_hash=hash_password(OWNER_PASSWORD),
        valid_until=utcnow() + timedelta(days=days),
        order_status_flow=default_flow().to_json(),
    )
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def shop(db_session):
    """Create Shop A (first tenant)."""
    return make_shop(db_session)


@pytest.fixture(scope='function')
def other_shop(db_session):
    """Create Shop B (second tenant)."""
    return make_shop(db_session, name="Bakery", owner="bakery")


@pytest.fixture(scope='function')
def customer(db_session):
    """Create a registered customer."""
    user = User(name="alice", password_hash=hash_password(CUSTOMER_PASSWORD))
    db_session.add(user)
    db_session.commit()
    return user


def make_product(db_session, shop, name="Latte", price_cents=1000, stock=5, status="online"):
    product = Product(
        shop_id=shop.id,
        name=name,
        description=f"{name} description",
        image_url=f"/uploads/{name.lower()}.png",
        price_cents=price_cents,
        stock=stock,
        status=status,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session, shop):
    """Product P: price 10.00, stock 5."""
    return make_product(db_session, shop)


@pytest.fixture(scope='function')
def product_with_options(db_session, product):
    """Attach a "Size" category with Regular (+0.00) and Large (+2.50)."""
    category = OptionCategory(product_id=product.id, name="Size", is_required=True, display_order=0)
    db_session.add(category)
    db_session.flush()
    regular = Option(category_id=category.id, name="Regular", price_adjustment_cents=0, is_default=True, display_order=0)
    large = Option(category_id=category.id, name="Large", price_adjustment_cents=250, display_order=1)
    db_session.add_all([regular, large])
    db_session.commit()
    return product, category, regular, large


@pytest.fixture(scope='function')
def admin():
    return OperatorPrincipal(user_id=1, username="admin")


@pytest.fixture(scope='function')
def owner(shop):
    return ShopOwnerPrincipal(shop_id=shop.id, username="shop_" + shop.owner_username)


@pytest.fixture(scope='function')
def customer_principal(customer):
    return CustomerPrincipal(user_id=customer.id, username=customer.name)


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for an operator or shop owner."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def operator_headers(client, operator):
    return auth_headers(get_auth_token(client, operator.username, OPERATOR_PASSWORD))


@pytest.fixture(scope='function')
def owner_headers(client, shop):
    return auth_headers(get_auth_token(client, shop.owner_username, OWNER_PASSWORD))


@pytest.fixture(scope='function')
def customer_headers(client, customer):
    response = client.post('/api/auth/user-login', json={
        'username': customer.name,
        'password': CUSTOMER_PASSWORD,
    })
    return auth_headers(response.json['token'])
