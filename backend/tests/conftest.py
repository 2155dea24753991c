"""
Pytest fixtures for DlVery backend tests.

Provides an app per test (in-memory SQLite, fresh cache), a test client,
one user per role with ready-made auth headers, and product helpers.

Fixtures hand out ids and headers rather than ORM objects: every request
runs in its own app context, so objects from fixture contexts would be
detached.
"""

import pytest

from dlvery import create_app
from dlvery.extensions import db
from dlvery.models import InventoryTransaction, Product
from dlvery.services.auth_service import create_user


TEST_PASSWORD = "secret123"


@pytest.fixture()
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'JWT_SECRET_KEY': 'test-secret',
        'CACHE_TYPE': 'SimpleCache',
        'GOOGLE_CLIENT_ID': 'test-client-id',
        'GOOGLE_CLIENT_SECRET': 'test-client-secret',
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.drop_all()


@pytest.fixture()
def client(app):
    """Create test client."""
    return app.test_client()


def make_user(app, username: str, role: str, *, password: str = TEST_PASSWORD, **extra) -> int:
    """Create a user directly through the service layer; returns its id."""
    with app.app_context():
        user = create_user(
            username=username,
            email=extra.pop("email", f"{username}@dlvery.test"),
            password=password,
            role=role,
            **extra,
        )
        return user.id


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password,
    })
    assert response.status_code == 200, response.get_json()
    return response.get_json()['data']['token']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def _account(app, client, username: str, role: str) -> dict:
    user_id = make_user(app, username, role)
    return {
        'id': user_id,
        'username': username,
        'headers': auth_headers(get_auth_token(client, username)),
    }


@pytest.fixture()
def admin(app, client):
    return _account(app, client, "admin", "ADMIN")


@pytest.fixture()
def invteam(app, client):
    return _account(app, client, "stocker", "INVTEAM")


@pytest.fixture()
def agent(app, client):
    return _account(app, client, "driver1", "DLTEAM")


@pytest.fixture()
def other_agent(app, client):
    return _account(app, client, "driver2", "DLTEAM")


def make_product(app, sku: str, *, quantity: int = 0, name: str | None = None, **extra) -> int:
    """Insert a product directly; returns its id."""
    with app.app_context():
        product = Product(
            sku=sku,
            name=name or f"Product {sku}",
            quantity=quantity,
            damaged=extra.pop("damaged", False),
            perishable=extra.pop("perishable", False),
            **extra,
        )
        db.session.add(product)
        db.session.commit()
        return product.id


def product_state(app, product_id: int) -> dict:
    with app.app_context():
        return db.session.get(Product, product_id).to_dict()


def ledger_rows(app, **filters) -> list[dict]:
    with app.app_context():
        rows = (
            db.session.query(InventoryTransaction)
            .filter_by(**filters)
            .order_by(InventoryTransaction.id.asc())
            .all()
        )
        return [r.to_dict() for r in rows]


@pytest.fixture()
def widget(app):
    """A product with 10 units on hand."""
    return make_product(app, "WID-001", quantity=10, name="Widget", category="ELECTRONICS")


@pytest.fixture()
def gadget(app):
    """A product with 5 units on hand."""
    return make_product(app, "GAD-001", quantity=5, name="Gadget", category="TOYS")
