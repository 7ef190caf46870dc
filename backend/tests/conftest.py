"""
Pytest fixtures for stockledger backend tests.

Provides test database setup, a default store, helpers for products and
suppliers, and a test client.
"""

import pytest

from stockledger import create_app
from stockledger.config import TestConfig
from stockledger.extensions import db
from stockledger.models import Store, Supplier, Account
from stockledger.services import products_service, ledger_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
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
def store(db_session):
    store = Store(name="Main Store", code="MAIN", is_active=True)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session):
    store = Store(name="Second Store", code="SECOND", is_active=True)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def headers(store):
    return {"X-Store-Id": str(store.id)}


@pytest.fixture(scope='function')
def supplier(db_session, store):
    supplier = Supplier(store_id=store.id, name="Faisal Textiles", phone="0300-1111111", current_balance_cents=0)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def second_supplier(db_session, store):
    supplier = Supplier(store_id=store.id, name="Lahore Fabrics", phone="0300-2222222", current_balance_cents=0)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def make_product(store):
    """Factory creating a SIMPLE product through the service layer."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        payload = {
            "sku": f"SKU-{counter['n']:03d}",
            "name": f"Product {counter['n']}",
            "buying_price_cents": 50,
            "selling_price_cents": 100,
            "initial_quantity": 10,
        }
        payload.update(overrides)
        return products_service.create_product(store_id=store.id, payload=payload)

    return _make


@pytest.fixture(scope='function')
def cash_account(db_session, store):
    accounts = ledger_service.ensure_default_accounts(store.id)
    db_session.commit()
    return accounts[ledger_service.CASH_ACCOUNT_NAME]


@pytest.fixture(scope='function')
def bank_account(db_session, store):
    accounts = ledger_service.ensure_default_accounts(store.id)
    db_session.commit()
    return accounts[ledger_service.BANK_ACCOUNT_NAME]


def balance_of(account_id: int) -> int:
    """Committed balance of an account."""
    db.session.expire_all()
    return db.session.get(Account, account_id).current_balance_cents


@pytest.fixture(scope='function')
def balance(db_session):
    return balance_of
