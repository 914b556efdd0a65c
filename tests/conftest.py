# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from datetime import datetime
from itertools import count
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-redeem-guard")
# TestClient connects as "testclient"; trust it as the proxy so tests can pick client IPs.
os.environ.setdefault("FORWARDED_ALLOW_IPS", "testclient")

from redeem_guard.api.v1.dependencies import get_fraud_guard_dep
from redeem_guard.core.security import ROLE_ADMIN, create_access_token
from redeem_guard.core.settings import Settings, settings
from redeem_guard.db.session import Base
from redeem_guard.db.session import get_db as app_get_session
from redeem_guard.main import app as fastapi_app
from redeem_guard.models import GiftCard, GiftCardOrder
from redeem_guard.repositories import FraudRepository
from redeem_guard.services.alerts import AlertDispatcher
from redeem_guard.services.fraud_detection import FraudDetectionService
from redeem_guard.services.guard import FraudGuard

TEST_DB_URL = "sqlite://"
TEST_SIGNING_SECRET = "test-signing-secret"
TEST_MERCHANT_ID = "merchant-1"

_GAN_COUNTER = count(1)


class FakeClock:
    """Manually advanced clock for window arithmetic."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def guard_settings() -> Settings:
    """Runtime settings; tests override individual limits via model_copy."""
    return settings


@pytest.fixture()
def signing_secret() -> str:
    return TEST_SIGNING_SECRET


@pytest.fixture()
def dispatcher() -> AlertDispatcher:
    """A dispatcher with no sink: emits are no-ops, signatures can be checked."""
    return AlertDispatcher(secret=TEST_SIGNING_SECRET)


@pytest.fixture()
def guard(
    guard_settings: Settings, dispatcher: AlertDispatcher, fake_clock: FakeClock
) -> FraudGuard:
    return FraudGuard.build(
        guard_settings, dispatcher=dispatcher, clock=fake_clock, alert_on_block=False
    )


@pytest.fixture(autouse=True)
def override_guard_dependency(app: FastAPI, guard: FraudGuard) -> Iterator[None]:
    app.dependency_overrides[get_fraud_guard_dep] = lambda: guard
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_fraud_guard_dep, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def repo(db_session: Session) -> FraudRepository:
    return FraudRepository(db_session)


@pytest.fixture()
def fraud_service(guard: FraudGuard, repo: FraudRepository) -> FraudDetectionService:
    return FraudDetectionService(guard, repo)


@pytest.fixture()
def make_gift_card(db_session: Session) -> Callable[..., GiftCard]:
    """Return a factory persisting gift cards with unique GANs."""

    def _make(
        *,
        gan: str | None = None,
        balance: int = 5000,
        status: str = "ACTIVE",
        redeemed: bool = False,
        expires_at: datetime | None = None,
        merchant_id: str = TEST_MERCHANT_ID,
    ) -> GiftCard:
        card = GiftCard(
            merchant_id=merchant_id,
            gan=gan or f"GAN{next(_GAN_COUNTER):010d}",
            amount=balance,
            balance=0 if redeemed else balance,
            status=status,
            redeemed=redeemed,
            expires_at=expires_at,
        )
        db_session.add(card)
        db_session.commit()
        db_session.refresh(card)
        return card

    return _make


@pytest.fixture()
def make_order(db_session: Session) -> Callable[[str, str], GiftCardOrder]:
    def _make(order_id: str, gan: str) -> GiftCardOrder:
        order = GiftCardOrder(id=order_id, gift_card_gan=gan)
        db_session.add(order)
        db_session.commit()
        return order

    return _make


@pytest.fixture()
def merchant_headers() -> dict[str, str]:
    """Return authorization headers for the test merchant."""
    token = create_access_token(TEST_MERCHANT_ID)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    """Return authorization headers for an admin."""
    token = create_access_token("admin-1", role=ROLE_ADMIN)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def client_headers() -> Callable[..., dict[str, str]]:
    """Return a builder for headers a trusted proxy would add for a client IP."""

    def _build(ip: str, *, user_agent: str = "pytest-agent", **extra: Any) -> dict[str, str]:
        headers = {"X-Forwarded-For": ip, "User-Agent": user_agent}
        headers.update({key.replace("_", "-"): str(value) for key, value in extra.items()})
        return headers

    return _build
