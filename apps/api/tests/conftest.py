import threading
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import courier_dispatch.models  # noqa: F401
from courier_dispatch.config import settings
from courier_dispatch.db.base import Base
from courier_dispatch.db.session import engine as app_engine
from courier_dispatch.db.session import get_db
from courier_dispatch.dependencies import (
    get_audit_recorder,
    get_clock,
    get_dispatch_engine,
    get_lock_registry,
    get_notification_sink,
    get_session_factory,
)
from courier_dispatch.integrations.errors import IntegrationUnavailableError
from courier_dispatch.main import app
from courier_dispatch.models.courier import Courier, CourierAccountStatus
from courier_dispatch.models.order import Order, OrderStatus
from courier_dispatch.observability import metrics_store
from courier_dispatch.services.audit_service import AuditRecorder
from courier_dispatch.services.dispatch_locks import DispatchLockRegistry
from courier_dispatch.services.dispatch_service import DispatchEngine

START_OF_TEST_DAY = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = START_OF_TEST_DAY) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class FakeNotificationSink:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent: list[dict] = []
        self.fail_for: set[str] = set()

    def notify(self, courier_id: str, title: str, body: str, data: dict) -> None:
        if courier_id in self.fail_for:
            raise IntegrationUnavailableError("notifications", "device offline")
        with self._lock:
            self.sent.append({"courier_id": courier_id, "title": title, "body": body, "data": data})

    def recipients(self) -> list[str]:
        with self._lock:
            return [item["courier_id"] for item in self.sent]


@pytest.fixture(scope="session", autouse=True)
def enable_test_auth_bypass():
    original = settings.enable_test_auth_bypass
    settings.enable_test_auth_bypass = True
    yield
    settings.enable_test_auth_bypass = original


@pytest.fixture(scope="session", autouse=True)
def enable_testing_mode():
    original = settings.testing
    settings.testing = True
    yield
    settings.testing = original


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield


@pytest.fixture(autouse=True)
def reset_metrics_store():
    metrics_store.reset()
    yield


@pytest.fixture
def commission_amount():
    original = settings.commission_amount
    settings.commission_amount = Decimal("2.5")
    yield settings.commission_amount
    settings.commission_amount = original


@pytest.fixture
def session_factory():
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=app_engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return FakeNotificationSink()


@pytest.fixture
def audit(session_factory, clock):
    return AuditRecorder(session_factory, clock)


@pytest.fixture
def locks():
    return DispatchLockRegistry(retention_s=60.0)


@pytest.fixture
def dispatch_engine(session_factory, notifier, audit, locks, clock):
    return DispatchEngine(
        session_factory=session_factory,
        notifier=notifier,
        audit=audit,
        locks=locks,
        clock=clock,
        response_timeout_s=0.3,
        poll_interval_s=0.02,
    )


@pytest.fixture
def client(session_factory, clock, notifier, audit, locks, dispatch_engine):
    # One session per request, like production; a shared session would serve
    # stale rows after the matching loop commits from another thread.
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_notification_sink] = lambda: notifier
    app.dependency_overrides[get_audit_recorder] = lambda: audit
    app.dependency_overrides[get_lock_registry] = lambda: locks
    app.dependency_overrides[get_dispatch_engine] = lambda: dispatch_engine
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_courier(db_session, clock):
    def _make(
        working_areas: list[str],
        *,
        user_id: str | None = None,
        name: str | None = None,
        available: bool = True,
        rating: float = 0.0,
        idle_minutes: float | None = 0,
        pending: str = "0",
    ) -> Courier:
        courier = Courier(
            user_id=user_id or f"courier-{uuid.uuid4().hex[:8]}",
            name=name,
            phone="+962790000000",
            working_areas=working_areas,
            is_available=available,
            is_approved=True,
            account_status=CourierAccountStatus.APPROVED,
            rating=rating,
            pending_settlement=Decimal(pending),
            last_active_at=(
                clock.now() - timedelta(minutes=idle_minutes) if idle_minutes is not None else None
            ),
            created_at=clock.now() - timedelta(days=7),
        )
        db_session.add(courier)
        db_session.commit()
        db_session.refresh(courier)
        return courier

    return _make


@pytest.fixture
def make_order(db_session, clock):
    def _make(
        *,
        zone: str | None = "خلدا",
        status: OrderStatus = OrderStatus.REQUESTED,
        courier: Courier | None = None,
        customer_id: str = "customer-1",
        estimated_price: str | None = "10.00",
        commission: str = "1.5",
    ) -> Order:
        order = Order(
            customer_id=customer_id,
            courier_id=courier.id if courier else None,
            items_text="2 كيلو بندورة وخبز",
            estimated_price=Decimal(estimated_price) if estimated_price is not None else None,
            delivery_fee=Decimal("1.5"),
            commission_amount=Decimal(commission),
            delivery_code="4821",
            delivery_address="شارع الجامعة، خلدا",
            zone=zone,
            status=status,
            assigned_at=clock.now() if courier else None,
            created_at=clock.now(),
            updated_at=clock.now(),
        )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order

    return _make
