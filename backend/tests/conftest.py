"""
Pytest fixtures for salonpos backend tests.

Provides test database setup, client/transaction factories, and test client.
"""

from datetime import datetime

import pytest
from salonpos import create_app
from salonpos.extensions import db
from salonpos.services import client_service, transaction_service
from salonpos.services.draft import DraftTransaction


OPERATOR = "sabina"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BUSINESS_TIMEZONE': 'Europe/Zurich',
        'DEFAULT_OPENING_CASH_CENTS': 20000,
        'DEPENDENT_AGE_THRESHOLD': 16,
        'VAT_RATE_BPS': 810,
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
def operator_headers():
    return {'X-Operator': OPERATOR}


@pytest.fixture(scope='function')
def make_client(db_session):
    """Factory: make_client("Marie", "Dupont", date_of_birth="1985-04-02")."""
    def _make(first_name="Marie", last_name="Dupont", **kwargs):
        return client_service.create_client(first_name=first_name, last_name=last_name, **kwargs)
    return _make


@pytest.fixture(scope='function')
def at_time(monkeypatch):
    """
    Pin the creation time of ledger rows written by the services.

    at_time(datetime(2024, 3, 15, 9, 0)) makes the next sales/refunds carry
    that UTC timestamp.
    """
    from salonpos.services import refund_service

    def _pin(moment: datetime):
        monkeypatch.setattr(transaction_service, "utcnow", lambda: moment)
        monkeypatch.setattr(refund_service, "utcnow", lambda: moment)
    return _pin


@pytest.fixture(scope='function')
def record_sale(db_session):
    """
    Factory: record_sale([("Coupe femme", 4500, 1, "service")], "cash",
    primary=client_id, included=[child_id]).
    """
    def _record(items, payment_method="cash", *, primary=None, included=(), include_vat=False, notes=None):
        draft = DraftTransaction(payment_method=payment_method, include_vat=include_vat, notes=notes)
        for name, price_cents, quantity, item_type in items:
            draft.add_item(name, price_cents, quantity, item_type)
        if primary is not None:
            draft.select_client(primary, primary=True)
        for client_id in included:
            draft.select_client(client_id, primary=False)
        return transaction_service.create_sale(draft, operator=OPERATOR)
    return _record
