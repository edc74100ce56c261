import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("LOG_DIR", "")

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from db.base import Base

import models  # noqa: F401  registers every table on Base.metadata

from main import app
from api.deps import get_db, get_current_user, get_gateway
from models.orm_user import UserEntity
from services.gateway import RazorpayGateway, compute_signature

TEST_KEY_ID = "rzp_test_key"
TEST_KEY_SECRET = "test_key_secret"
TEST_WEBHOOK_SECRET = "test_webhook_secret"


class FakeRazorpayClient:
    """Stands in for ``razorpay.Client``: records orders, serves canned subscription statuses."""

    def __init__(self):
        self.orders = []
        self.subscription_statuses = {}
        self.fail = False
        self.order = SimpleNamespace(create=self._create_order)
        self.subscription = SimpleNamespace(fetch=self._fetch_subscription)

    def _create_order(self, data):
        if self.fail:
            raise RuntimeError("gateway unreachable")
        order = {"id": f"order_test{len(self.orders) + 1:04d}", "entity": "order", "status": "created", **data}
        self.orders.append(order)
        return order

    def _fetch_subscription(self, subscription_id):
        if self.fail:
            raise RuntimeError("gateway unreachable")
        return {"id": subscription_id, "status": self.subscription_statuses.get(subscription_id, "created")}


class Signer:
    def payment(self, order_id, payment_id):
        return compute_signature(TEST_KEY_SECRET, f"{order_id}|{payment_id}")

    def webhook(self, body):
        return compute_signature(TEST_WEBHOOK_SECRET, body)


@pytest.fixture(scope="session")
def engine():
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=eng)
    return eng


@pytest.fixture()
def db_session(engine):
    connection = engine.connect()
    transaction = connection.begin()

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=connection)
    db = TestingSessionLocal()

    nested = connection.begin_nested()

    @event.listens_for(db, "after_transaction_end")
    def restart_savepoint(session, trans):
        nonlocal nested
        if nested.is_active:
            return
        if connection.closed:
            return
        nested = connection.begin_nested()

    try:
        yield db
    finally:
        db.close()
        transaction.rollback()
        connection.close()


@pytest.fixture()
def fake_razorpay():
    return FakeRazorpayClient()


@pytest.fixture()
def gateway(fake_razorpay):
    return RazorpayGateway(
        key_id=TEST_KEY_ID,
        key_secret=TEST_KEY_SECRET,
        webhook_secret=TEST_WEBHOOK_SECRET,
        currency="INR",
        client=fake_razorpay,
    )


@pytest.fixture()
def signer():
    return Signer()


def _make_user(db, username, role="freelancer", is_admin=False):
    user = UserEntity(
        username=username,
        email=f"{username}@example.com",
        password_hash="x",
        role=role,
        is_admin=is_admin,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def user(db_session):
    return _make_user(db_session, "testuser")


@pytest.fixture()
def hiring_user(db_session):
    return _make_user(db_session, "hirer", role="hiring")


@pytest.fixture()
def admin_user(db_session):
    return _make_user(db_session, "admin", is_admin=True)


def _client_for(db_session, gateway, current_user=None):
    def _get_db_override():
        yield db_session

    app.dependency_overrides[get_db] = _get_db_override
    app.dependency_overrides[get_gateway] = lambda: gateway
    if current_user is not None:
        app.dependency_overrides[get_current_user] = lambda: current_user
    return TestClient(app)


@pytest.fixture()
def client(db_session, gateway, user):
    try:
        yield _client_for(db_session, gateway, user)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def hiring_client(db_session, gateway, hiring_user):
    try:
        yield _client_for(db_session, gateway, hiring_user)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def admin_client(db_session, gateway, admin_user):
    try:
        yield _client_for(db_session, gateway, admin_user)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def offline_client(db_session, user):
    """Authenticated client with payments disabled (no gateway configured)."""
    try:
        yield _client_for(db_session, None, user)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def public_client(db_session, gateway):
    try:
        yield _client_for(db_session, gateway)
    finally:
        app.dependency_overrides.clear()
