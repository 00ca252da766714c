"""Shared test fixtures for the booking engine tests."""

import os

# Must be set before bookingcore.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

import threading  # noqa: E402
from contextlib import contextmanager  # noqa: E402
from datetime import datetime, timedelta  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import Callable, Generator  # noqa: E402
from unittest.mock import AsyncMock, patch  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from bookingcore.database import Base, create_db_engine, get_db  # noqa: E402
from bookingcore.domain.reminders.router import get_cron_secret  # noqa: E402
from bookingcore.main import app  # noqa: E402
from bookingcore.models import (  # noqa: E402
    CONFIRMED,
    Availability,
    Booking,
    Company,
    Resource,
    Service,
)
from bookingcore.services.notification_service import (  # noqa: E402
    NotificationSender,
    get_notification_sender,
)
from bookingcore.shared.clock import Clock, get_clock  # noqa: E402
from bookingcore.shared.errors import BookingError  # noqa: E402
from bookingcore.tick_lock import get_tick_lock  # noqa: E402

# Monday 2025-01-06 08:00 UTC
NOW = datetime(2025, 1, 6, 8, 0)
CRON_TEST_SECRET = "test-cron-secret"


class FixedClock(Clock):
    """Clock frozen at a given instant until advanced."""

    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta) -> None:
        self.current += timedelta(**delta)


class FakeTickLock:
    """In-process stand-in for the Redis tick lock."""

    def __init__(self, busy: bool = False):
        self.busy = busy
        self.holds = 0

    @contextmanager
    def hold(self):
        if not self.busy:
            self.holds += 1
        yield not self.busy


@pytest.fixture(autouse=True)
def no_outbound_email():
    """Keep booking emails off the network; tests inspect the mock when they care."""
    with patch("bookingcore.email_service.send_email", new=AsyncMock(return_value={"id": "test"})) as mock:
        yield mock


@pytest.fixture
def engine(tmp_path: Path):
    """File-backed SQLite database per test."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'bookings.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def race(db, session_factory):
    """
    Run each call in its own thread and session, released together by a barrier.

    The shared test session is closed first so it holds no database lock.
    Returns the sorted outcomes: "ok" or the BookingError code.
    """

    def _race(calls: list[Callable[[Session], object]]) -> list[str]:
        db.close()
        barrier = threading.Barrier(len(calls))
        outcomes: list[str] = []
        lock = threading.Lock()

        def attempt(call):
            session = session_factory()
            try:
                barrier.wait()
                call(session)
                result = "ok"
            except BookingError as e:
                result = e.code
            finally:
                session.close()
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt, args=(call,)) for call in calls]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)
        return sorted(outcomes)

    return _race


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def company(db) -> Company:
    company = Company(name="Sunrise Dental", slug="sunrise", timezone="UTC")
    db.add(company)
    db.commit()
    return company


@pytest.fixture
def resource(db, company) -> Resource:
    resource = Resource(company_id=company.id, name="Dr. Ruiz", type="STAFF")
    db.add(resource)
    db.commit()
    return resource


@pytest.fixture
def service(db, company, resource) -> Service:
    """60-minute service performed by one resource."""
    service = Service(company_id=company.id, name="Checkup", duration=60, resources=[resource])
    db.add(service)
    db.commit()
    return service


@pytest.fixture
def monday_hours(db, resource) -> Availability:
    """Monday 09:00-12:00 working hours."""
    rule = Availability(
        resource_id=resource.id, day_of_week=1, start_time="09:00", end_time="12:00"
    )
    db.add(rule)
    db.commit()
    return rule


@pytest.fixture
def make_booking(db, company, service, resource):
    """Insert a booking row directly, bypassing the guard."""
    counter = {"n": 0}

    def _make(start: datetime, status: str = CONFIRMED, **fields) -> Booking:
        counter["n"] += 1
        n = counter["n"]
        values = {
            "company_id": company.id,
            "service_id": service.id,
            "resource_id": resource.id,
            "start_time": start,
            "end_time": start + timedelta(minutes=service.duration),
            "status": status,
            "customer_name": f"Customer {n}",
            "customer_email": f"customer{n}@example.com",
            "cancellation_token": f"cancel-token-{n}",
            "reschedule_token": f"reschedule-token-{n}",
        }
        values.update(fields)
        booking = Booking(**values)
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def sender() -> NotificationSender:
    """Sender whose EMAIL handler records calls instead of delivering."""
    return NotificationSender(handlers={"EMAIL": AsyncMock(return_value={"id": "sent"})})


@pytest.fixture
def tick_lock() -> FakeTickLock:
    return FakeTickLock()


@pytest.fixture
def client(db, clock, sender, tick_lock) -> Generator[TestClient, None, None]:
    """API client sharing the test session, clock, sender and tick lock."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notification_sender] = lambda: sender
    app.dependency_overrides[get_tick_lock] = lambda: tick_lock
    app.dependency_overrides[get_cron_secret] = lambda: CRON_TEST_SECRET
    yield TestClient(app)
    app.dependency_overrides.clear()
