"""
Pytest fixtures for storecore backend tests.

Provides the in-memory test database, users per role, catalog/customer/
supplier factories, an alert recorder and authenticated test-client headers.
"""

from decimal import Decimal

import pytest

from storecore import create_app
from storecore.config import TestConfig
from storecore.extensions import db
from storecore.models import User
from storecore.models.auth import ROLE_CASHIER, ROLE_INVENTORY_STAFF, ROLE_MANAGER, ROLE_OWNER
from storecore.models.catalog import UNIT_PIECE
from storecore.services import catalog_service, customer_service, supplier_service
from storecore.services.auth_service import hash_password
from storecore.services.notification_service import EXTENSION_KEY, AlertNotifier

PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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
        # Clear all data but keep schema (Core deletes bypass the append-only listeners)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(username: str, role: str) -> User:
    user = User(username=username, name=username.title(), password_hash=hash_password(PASSWORD), role=role)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def owner(db_session):
    return _make_user("owner", ROLE_OWNER)


@pytest.fixture(scope='function')
def manager(db_session):
    return _make_user("manager", ROLE_MANAGER)


@pytest.fixture(scope='function')
def cashier(db_session):
    return _make_user("cashier", ROLE_CASHIER)


@pytest.fixture(scope='function')
def stock_clerk(db_session):
    return _make_user("stockclerk", ROLE_INVENTORY_STAFF)


@pytest.fixture(scope='function')
def category(db_session, owner):
    return catalog_service.create_category("Groceries", actor_user_id=owner.id)


@pytest.fixture(scope='function')
def make_product(db_session, owner, category):
    """Factory: products are created through the catalog so opening stock hits the ledger."""
    counter = {"n": 0}

    def _make(
        *,
        stock=0,
        min_stock=5,
        price_cents=5000,
        tax_rate_bps=None,
        unit=UNIT_PIECE,
        sku=None,
        barcode=None,
        name=None,
    ):
        counter["n"] += 1
        n = counter["n"]
        data = {
            "sku": sku or f"SKU-{n:03d}",
            "name": name or f"Product {n}",
            "category_id": category.id,
            "selling_price_cents": price_cents,
            "purchase_price_cents": price_cents // 2,
            "tax_rate_bps": tax_rate_bps,
            "unit": unit,
            "min_stock_alert": Decimal(str(min_stock)),
        }
        if barcode:
            data["barcode"] = barcode
        return catalog_service.create_product(data, actor_user_id=owner.id, opening_stock=stock)

    return _make


@pytest.fixture(scope='function')
def customer(db_session, owner):
    return customer_service.create_customer(name="Asha Rao", phone="9000000001", actor_user_id=owner.id)


@pytest.fixture(scope='function')
def supplier(db_session, owner):
    return supplier_service.create_supplier(name="Fresh Farms", phone="8000000001", actor_user_id=owner.id)


class RecordingNotifier(AlertNotifier):
    def __init__(self):
        self.batches = []

    def notify(self, alerts):
        self.batches.append(alerts)

    @property
    def alerts(self):
        return [alert for batch in self.batches for alert in batch]


@pytest.fixture(scope='function')
def recorded_alerts(app):
    """Swap the app's alert notifier for one that records deliveries."""
    previous = app.extensions.get(EXTENSION_KEY)
    recorder = RecordingNotifier()
    app.extensions[EXTENSION_KEY] = recorder
    yield recorder
    app.extensions[EXTENSION_KEY] = previous


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
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
def owner_headers(client, owner):
    return auth_headers(get_auth_token(client, owner.username))


@pytest.fixture(scope='function')
def manager_headers(client, manager):
    return auth_headers(get_auth_token(client, manager.username))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier):
    return auth_headers(get_auth_token(client, cashier.username))


@pytest.fixture(scope='function')
def clerk_headers(client, stock_clerk):
    return auth_headers(get_auth_token(client, stock_clerk.username))
