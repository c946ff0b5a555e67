"""
Pytest fixtures for the test database, services, client, and authentication.

Every test gets its own SQLite file (WAL mode, like the local runtime), an
in-memory delayed queue on a manual clock and the mock payment gateway.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("PAYMENT_GATEWAY", "mock")
os.environ.setdefault("QUEUE_BACKEND", "memory")
os.environ.setdefault("RUN_WORKER_IN_PROCESS", "false")

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ticketing.main import app
from ticketing.core.exceptions import GatewayError
from ticketing.core.security import create_access_token
from ticketing.db.base import Base
from ticketing.db.session import get_db, make_engine, make_session_factory
from ticketing.domain.state_machine import EventStatus, PaymentMethod
from ticketing.models import Event
from ticketing.services.booking_service import ReservationCoordinator
from ticketing.services.interfaces.in_memory_queue import InMemoryDelayedQueue
from ticketing.services.interfaces.mock_gateway import MockGateway
from ticketing.services.interfaces.payment_gateway import PaymentGateway
from ticketing.services.payment_service import PaymentService, PaymentStatusUpdater
from ticketing.services.reconciliation_service import ReconciliationService
from ticketing.workers.reconciliation_worker import ReconciliationWorker

RECONCILIATION_DELAY = 300
USER_ID = 1
OTHER_USER_ID = 2
ADMIN_ID = 99


class ManualClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingGateway(PaymentGateway):
    """Gateway whose order endpoint is down."""

    async def create_order(self, amount, currency, receipt):
        raise GatewayError("Payment order could not be created")

    def verify_signature(self, order_id, payment_id, signature):
        return False

    def verify_webhook(self, body, signature):
        return False


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database with all tables."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def queue(clock: ManualClock) -> InMemoryDelayedQueue:
    return InMemoryDelayedQueue(visibility_timeout=60, max_attempts=3, retry_backoff=5, clock=clock)


@pytest.fixture
def gateway() -> MockGateway:
    return MockGateway()


@pytest.fixture
def coordinator(session_factory, gateway, queue) -> ReservationCoordinator:
    return ReservationCoordinator(
        session_factory,
        gateway,
        queue,
        currency="INR",
        reconciliation_delay_seconds=RECONCILIATION_DELAY,
    )


@pytest.fixture
def updater(session_factory) -> PaymentStatusUpdater:
    return PaymentStatusUpdater(session_factory)


@pytest.fixture
def payment_service(gateway, updater) -> PaymentService:
    return PaymentService(gateway, updater)


@pytest.fixture
def reconciliation_service(session_factory) -> ReconciliationService:
    return ReconciliationService(
        session_factory,
        reconciliation_delay_seconds=RECONCILIATION_DELAY,
        sweep_grace_seconds=120,
    )


@pytest.fixture
def worker(queue, reconciliation_service) -> ReconciliationWorker:
    return ReconciliationWorker(queue, reconciliation_service, poll_interval=0.01, batch_size=10)


@pytest_asyncio.fixture
async def make_event(session_factory):
    """Factory for events inserted straight into the store."""

    async def _make_event(
        total_tickets: int = 100,
        available_tickets: int | None = None,
        price: int = 50000,
        status: EventStatus = EventStatus.ACTIVE,
        starts_in: timedelta = timedelta(days=30),
    ) -> Event:
        start = datetime.now(timezone.utc) + starts_in
        event = Event(
            title="Test Concert",
            description="A test event",
            location="Test Venue",
            start_date=start,
            end_date=start + timedelta(hours=3),
            price=price,
            total_tickets=total_tickets,
            available_tickets=total_tickets if available_tickets is None else available_tickets,
            status=status,
            organizer_id=ADMIN_ID,
        )
        async with session_factory() as db:
            async with db.begin():
                db.add(event)
        return event

    return _make_event


@pytest_asyncio.fixture
async def test_event(make_event) -> Event:
    """Active event with 100 tickets at 500.00."""
    return await make_event()


@pytest_asyncio.fixture
async def fetch(session_factory):
    """Read the current committed row for a model by primary key."""

    async def _fetch(model, pk):
        async with session_factory() as db:
            return (await db.execute(select(model).where(model.id == pk))).scalar_one_or_none()

    return _fetch


@pytest_asyncio.fixture
async def available(fetch):
    async def _available(event_id: int) -> int:
        return (await fetch(Event, event_id)).available_tickets

    return _available


@pytest_asyncio.fixture
async def reserve(coordinator):
    """Create a Pending booking for the default user."""

    async def _reserve(event_id: int, quantity: int = 2, user_id: int = USER_ID):
        return await coordinator.create_booking(
            event_id=event_id,
            user_id=user_id,
            quantity=quantity,
            booking_details=[{"name": "Asha Rao", "email": "asha@example.com", "phone": "9876543210"}],
            payment_method=PaymentMethod.UPI,
        )

    return _reserve


@pytest_asyncio.fixture
async def client(session_factory, coordinator, payment_service, queue, worker) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the per-test store, queue and gateway."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.coordinator = coordinator
    app.state.payment_service = payment_service
    app.state.queue = queue
    app.state.worker = worker

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(USER_ID)})}"}


@pytest.fixture
def other_user_headers() -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(OTHER_USER_ID)})}"}


@pytest.fixture
def admin_headers() -> dict:
    token = create_access_token(data={"sub": str(ADMIN_ID), "role": "admin"})
    return {"Authorization": f"Bearer {token}"}
