"""
Pytest fixtures for bag ledger tests.

Provides test database setup, tenant fixtures (two organizations, drivers,
clients), a recording OTP notifier and the Flask test client.
"""

from datetime import datetime

import pytest

from bagledger import create_app
from bagledger.extensions import db
from bagledger.models import Client, Driver, Organization
from bagledger.services.notification_service import set_notifier


# Fixed business clock so expiry checks are deterministic.
T0 = datetime(2024, 5, 1, 9, 0, 0)


class RecordingNotifier:
    """Captures dispatched issues instead of delivering codes."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send_issue_otp(self, issue):
        if self.fail:
            raise RuntimeError("SMTP unavailable")
        self.sent.append((issue.id, issue.client_email, issue.otp_code))

    def last_code(self, issue_id):
        for sent_id, _, code in reversed(self.sent):
            if sent_id == issue_id:
                return code
        return None


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BAG_OTP_TTL_MINUTES': 15,
        'BAG_DEFAULT_PAGE_SIZE': 20,
        'BAG_MAX_PAGE_SIZE': 100,
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
def notifier(app):
    """Replace OTP delivery with a recorder for the duration of a test."""
    recorder = RecordingNotifier()
    set_notifier(app, recorder)
    yield recorder
    app.extensions.pop('bag_otp_notifier', None)


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    org = Organization(name="Org A - Clean City Waste", code="CCW", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(name="Org B - Eco Haulers", code="ECO", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def driver_a(db_session, org_a):
    driver = Driver(org_id=org_a.id, name="Amina Otieno", email="amina@ccw.test")
    db_session.add(driver)
    db_session.commit()
    return driver


@pytest.fixture(scope='function')
def driver_b(db_session, org_a):
    driver = Driver(org_id=org_a.id, name="Brian Mwangi", email="brian@ccw.test")
    db_session.add(driver)
    db_session.commit()
    return driver


@pytest.fixture(scope='function')
def foreign_driver(db_session, org_b):
    """Driver that belongs to Organization B."""
    driver = Driver(org_id=org_b.id, name="Carl Foreign", email="carl@eco.test")
    db_session.add(driver)
    db_session.commit()
    return driver


@pytest.fixture(scope='function')
def client_a(db_session, org_a):
    client = Client(
        org_id=org_a.id,
        name="Greenview Apartments",
        email="office@greenview.test",
        account_number="ACC-0001",
    )
    db_session.add(client)
    db_session.commit()
    return client


@pytest.fixture(scope='function')
def client_no_email(db_session, org_a):
    client = Client(org_id=org_a.id, name="Riverside Cafe", email=None, account_number="ACC-0002")
    db_session.add(client)
    db_session.commit()
    return client


def tenant_headers(org, actor="ops@ccw.test") -> dict:
    """Helper to create the gateway tenant headers."""
    return {'X-Organization-Id': str(org.id), 'X-Actor': actor}
