"""
Pytest fixtures for the distributor ledger backend.

Provides an in-memory database, tenant fixtures (distributors, employee,
admin, shops, products) and a recording notification gateway.
"""

from datetime import datetime

import pytest
from distro import create_app
from distro.extensions import db, notifier
from distro.models import User, Employee, Shop, Product
from distro.models.accounts import ROLE_ADMIN, ROLE_DISTRIBUTOR, ROLE_EMPLOYEE
from distro.services.notification_service import LogGateway, NotificationGateway


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'NOTIFICATIONS_SYNC': True,
    'TELEGRAM_BOT_TOKEN': '',
    'LEDGER_RETRY_BACKOFF': 0,
}


class RecordingGateway(NotificationGateway):
    """Captures every delivered notification."""

    def __init__(self):
        self.sent = []

    def send(self, channel_id, event_kind, payload):
        self.sent.append((channel_id, event_kind, payload))

    def kinds(self):
        return [kind for _, kind, _ in self.sent]


class FailingGateway(NotificationGateway):
    def __init__(self):
        self.attempts = 0

    def send(self, channel_id, event_kind, payload):
        self.attempts += 1
        raise RuntimeError("chat unreachable")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
def notifications(app):
    """Route notifications into a RecordingGateway for the test."""
    gateway = RecordingGateway()
    notifier.set_gateway(gateway)
    yield gateway
    notifier.set_gateway(LogGateway())


@pytest.fixture(scope='function')
def failing_notifications(app):
    gateway = FailingGateway()
    notifier.set_gateway(gateway)
    yield gateway
    notifier.set_gateway(LogGateway())


@pytest.fixture(scope='function')
def distributor(db_session):
    user = User(name="Distributor A", phone="998900000001", role=ROLE_DISTRIBUTOR)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_distributor(db_session):
    user = User(name="Distributor B", phone="998900000002", role=ROLE_DISTRIBUTOR)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def employee(db_session, distributor):
    user = User(name="Agent A", phone="998900000003", role=ROLE_EMPLOYEE)
    db_session.add(user)
    db_session.flush()
    db_session.add(Employee(user_id=user.id, distributor_id=distributor.id))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin(db_session):
    user = User(name="Admin", phone="998900000009", role=ROLE_ADMIN)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def shop(db_session, distributor):
    shop = Shop(
        distributor_id=distributor.id,
        name="Corner Market",
        owner_name="Aziz",
        phone="998901112233",
        chat_id="1001",
        total_debt_cents=0,
        created_at=datetime(2026, 1, 1),
    )
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def silent_shop(db_session, distributor):
    """Shop with no notification channel."""
    shop = Shop(distributor_id=distributor.id, name="Quiet Store", total_debt_cents=0)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def foreign_shop(db_session, other_distributor):
    shop = Shop(distributor_id=other_distributor.id, name="Other Market", chat_id="2001", total_debt_cents=0)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def products(db_session, distributor):
    """Oil: 8000.00 x 10 in stock; sugar: 5000.00 x 5 in stock."""
    oil = Product(distributor_id=distributor.id, name="Sunflower oil", price_cents=8000_00, stock=10)
    sugar = Product(distributor_id=distributor.id, name="Sugar", price_cents=5000_00, stock=5)
    db_session.add_all([oil, sugar])
    db_session.commit()
    return oil, sugar


@pytest.fixture(scope='function')
def foreign_product(db_session, other_distributor):
    product = Product(distributor_id=other_distributor.id, name="Rice", price_cents=1500_00, stock=100)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def auth_headers():
    """Build the headers the upstream auth middleware would forward."""
    def _headers(user) -> dict:
        return {'X-User-Id': str(user.id)}
    return _headers
