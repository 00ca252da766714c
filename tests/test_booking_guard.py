"""Tests for the booking guard: creation, reschedule and the no-double-booking guarantee."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker

from bookingcore.database import create_db_engine
from bookingcore.domain.scheduling.booking_guard import (
    BookingGuard,
    is_lock_timeout,
    is_slot_violation,
    translate_store_error,
)
from bookingcore.domain.scheduling.lifecycle_service import BookingLifecycleService
from bookingcore.domain.scheduling.repository import ScheduleRepository
from bookingcore.domain.scheduling.schemas import CustomerInfo
from bookingcore.models import CANCELLED, CONFIRMED, PENDING, Blockout, Booking, Customer
from bookingcore.shared.errors import (
    ConflictError,
    NotFoundError,
    TokenExpiredError,
    UpstreamError,
    ValidationError,
)


def monday(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 1, 6, hour, minute)


@pytest.fixture
def guard(db, clock) -> BookingGuard:
    return BookingGuard(db, clock)


@pytest.fixture
def ana() -> CustomerInfo:
    return CustomerInfo(name="Ana Torres", email="ana@example.com", phone="+34600000000")


class TestCreateBooking:
    def test_creates_confirmed_booking_with_tokens(self, guard, service, resource, ana):
        booking = guard.create_booking(service.id, resource.id, monday(10), ana)

        assert booking.id is not None
        assert booking.status == CONFIRMED
        assert booking.end_time == monday(11)
        assert booking.confirmation_token is None
        assert booking.cancellation_token
        assert booking.reschedule_token
        assert booking.cancellation_token != booking.reschedule_token

    def test_pending_when_company_requires_confirmation(self, db, guard, company, service, resource, ana):
        company.requires_booking_confirmation = True
        db.commit()

        booking = guard.create_booking(service.id, resource.id, monday(10), ana)

        assert booking.status == PENDING
        assert booking.confirmation_token

    def test_customer_record_is_upserted(self, db, guard, service, resource, ana):
        guard.create_booking(service.id, resource.id, monday(9), ana)
        guard.create_booking(service.id, resource.id, monday(11), ana)

        customers = db.query(Customer).all()
        assert len(customers) == 1
        assert customers[0].first_name == "Ana"
        assert customers[0].last_name == "Torres"
        assert customers[0].total_bookings == 2

    def test_customer_without_email_is_not_tracked(self, db, guard, service, resource):
        booking = guard.create_booking(service.id, resource.id, monday(10), CustomerInfo(name="Walk In"))
        assert booking.customer_id is None
        assert db.query(Customer).count() == 0

    def test_overlapping_interval_conflicts(self, guard, service, resource, ana, make_booking):
        make_booking(monday(10))

        with pytest.raises(ConflictError) as exc_info:
            guard.create_booking(service.id, resource.id, monday(10, 30), ana)

        assert "no longer available" in exc_info.value.message

    def test_back_to_back_bookings_are_allowed(self, guard, service, resource, ana, make_booking):
        make_booking(monday(9))
        booking = guard.create_booking(service.id, resource.id, monday(10), ana)
        assert booking.start_time == monday(10)

    def test_cancelled_booking_does_not_block(self, guard, service, resource, ana, make_booking):
        make_booking(monday(10), status=CANCELLED)
        booking = guard.create_booking(service.id, resource.id, monday(10), ana)
        assert booking.status == CONFIRMED

    def test_blockout_conflicts(self, db, guard, service, resource, ana):
        db.add(Blockout(resource_id=resource.id, start_time=monday(10), end_time=monday(12)))
        db.commit()

        with pytest.raises(ConflictError):
            guard.create_booking(service.id, resource.id, monday(9, 30), ana)

    def test_conflict_leaves_no_partial_rows(self, db, guard, service, resource, ana, make_booking):
        make_booking(monday(10))
        with pytest.raises(ConflictError):
            guard.create_booking(service.id, resource.id, monday(10), ana)

        assert db.query(Booking).count() == 1
        assert db.query(Customer).count() == 0

    def test_start_in_the_past(self, guard, service, resource, ana, clock):
        with pytest.raises(ValidationError):
            guard.create_booking(service.id, resource.id, clock.now() - timedelta(hours=1), ana)

    def test_unknown_service(self, guard, resource, ana):
        with pytest.raises(NotFoundError):
            guard.create_booking(999, resource.id, monday(10), ana)

    def test_resource_not_eligible_for_service(self, guard, service, ana):
        with pytest.raises(NotFoundError):
            guard.create_booking(service.id, 999, monday(10), ana)

    def test_aware_start_time_is_normalized(self, guard, service, resource, ana):
        from datetime import timezone

        booking = guard.create_booking(
            service.id, resource.id, monday(10).replace(tzinfo=timezone.utc), ana
        )
        assert booking.start_time == monday(10)
        assert booking.start_time.tzinfo is None


class TestConcurrentCreates:
    def test_only_one_of_many_concurrent_creates_wins(self, race, session_factory, clock, service, resource):
        service_id, resource_id = service.id, resource.id

        outcomes = race(
            [
                lambda s, n=n: BookingGuard(s, clock).create_booking(
                    service_id, resource_id, monday(10), CustomerInfo(name=f"Customer {n}")
                )
                for n in range(5)
            ]
        )

        assert outcomes == ["ok"] + ["slot_unavailable"] * 4
        check = session_factory()
        try:
            live = check.query(Booking).filter(Booking.status != CANCELLED).all()
            assert len(live) == 1
        finally:
            check.close()

    def test_overlapping_but_different_starts_also_serialize(self, race, clock, service, resource):
        service_id, resource_id = service.id, resource.id

        outcomes = race(
            [
                lambda s, start=start: BookingGuard(s, clock).create_booking(
                    service_id, resource_id, start, CustomerInfo(name="Racer")
                )
                for start in (monday(10), monday(10, 30))
            ]
        )

        assert outcomes == ["ok", "slot_unavailable"]


def live_intervals(session_factory) -> list[tuple[datetime, datetime]]:
    session = session_factory()
    try:
        rows = session.query(Booking).filter(Booking.status != CANCELLED).all()
        return sorted((b.start_time, b.end_time) for b in rows)
    finally:
        session.close()


def assert_no_overlaps(intervals):
    for (_, prev_end), (next_start, _) in zip(intervals, intervals[1:]):
        assert prev_end <= next_start


class TestConcurrentReschedules:
    def test_two_bookings_moved_into_the_same_interval(self, race, session_factory, clock, make_booking):
        first = make_booking(monday(9))
        second = make_booking(monday(12))
        first_token, second_token = first.reschedule_token, second.reschedule_token

        outcomes = race(
            [
                lambda s: BookingLifecycleService(s, clock).reschedule_by_token(first_token, monday(10, 30)),
                lambda s: BookingLifecycleService(s, clock).reschedule_by_token(second_token, monday(10)),
            ]
        )

        assert outcomes == ["ok", "slot_unavailable"]
        assert_no_overlaps(live_intervals(session_factory))

    def test_create_racing_a_reschedule(self, race, session_factory, clock, service, resource, make_booking):
        booking = make_booking(monday(9))
        token = booking.reschedule_token
        service_id, resource_id = service.id, resource.id

        outcomes = race(
            [
                lambda s: BookingLifecycleService(s, clock).reschedule_by_token(token, monday(10)),
                lambda s: BookingGuard(s, clock).create_booking(
                    service_id, resource_id, monday(10, 30), CustomerInfo(name="Walk In")
                ),
            ]
        )

        assert outcomes == ["ok", "slot_unavailable"]
        intervals = live_intervals(session_factory)
        assert len(intervals) == 2
        assert_no_overlaps(intervals)

    def test_same_link_used_concurrently_moves_booking_once(self, race, session_factory, clock, make_booking):
        booking = make_booking(monday(9))
        token = booking.reschedule_token

        outcomes = race(
            [
                lambda s, start=start: BookingLifecycleService(s, clock).reschedule_by_token(token, start)
                for start in (monday(10), monday(11), monday(12))
            ]
        )

        assert outcomes == ["ok", "token_expired", "token_expired"]


class TestStaleRescheduleLink:
    def test_rotated_token_is_rechecked_under_the_lock(self, db, session_factory, clock, make_booking):
        booking = make_booking(monday(9))
        booking_id, token = booking.id, booking.reschedule_token
        db.commit()

        other = session_factory()
        try:
            stale = ScheduleRepository.get_booking_by_reschedule_token(other, token)
            other.commit()

            BookingLifecycleService(db, clock).reschedule_by_token(token, monday(10))
            db.commit()

            with pytest.raises(TokenExpiredError):
                BookingGuard(other, clock).reschedule(stale, monday(11), token=token)
        finally:
            other.close()

        moved = db.get(Booking, booking_id)
        db.refresh(moved)
        assert moved.start_time == monday(10)


class TestStoreErrors:
    def test_lock_wait_timeout_is_a_conflict(self, db, engine, session_factory, clock, service, resource):
        service_id, resource_id = service.id, resource.id
        db.close()

        impatient_engine = create_db_engine(str(engine.url), lock_timeout_seconds=0.2)
        holder = session_factory()
        impatient = sessionmaker(autocommit=False, autoflush=False, bind=impatient_engine)()
        try:
            # BEGIN IMMEDIATE takes the write lock and keeps it until rollback
            holder.execute(text("SELECT 1"))

            with pytest.raises(ConflictError):
                BookingGuard(impatient, clock).create_booking(
                    service_id, resource_id, monday(10), CustomerInfo(name="Late")
                )
        finally:
            holder.rollback()
            holder.close()
            impatient.close()
            impatient_engine.dispose()

    def test_unique_index_backstops_the_overlap_check(self, guard, service, resource, ana, make_booking, monkeypatch):
        make_booking(monday(10))
        monkeypatch.setattr(BookingGuard, "_ensure_free", lambda self, *args, **kwargs: None)

        with pytest.raises(ConflictError):
            guard.create_booking(service.id, resource.id, monday(10), ana)

    def test_postgres_lock_timeout_codes(self):
        class LockNotAvailable(Exception):
            pgcode = "55P03"

        error = OperationalError("SELECT ... FOR UPDATE", {}, LockNotAvailable("canceling statement"))

        assert is_lock_timeout(error)
        assert isinstance(translate_store_error(error), ConflictError)

    def test_other_operational_errors_are_upstream(self):
        error = OperationalError("SELECT 1", {}, Exception("server closed the connection"))
        assert isinstance(translate_store_error(error), UpstreamError)

    def test_only_the_slot_index_is_a_conflict(self):
        slot = IntegrityError(
            "INSERT", {}, Exception("UNIQUE constraint failed: bookings.resource_id, bookings.start_time")
        )
        customer = IntegrityError(
            "INSERT", {}, Exception("UNIQUE constraint failed: customers.company_id, customers.email")
        )

        assert isinstance(translate_store_error(slot), ConflictError)
        assert isinstance(translate_store_error(customer), UpstreamError)

    def test_constraint_name_from_postgres_diagnostics(self):
        class Diag:
            constraint_name = "uq_customers_company_email"

        class UniqueViolation(Exception):
            diag = Diag()

        error = IntegrityError("INSERT", {}, UniqueViolation("duplicate key value"))

        assert not is_slot_violation(error)


class TestConcurrentFirstBookingsBySameCustomer:
    def test_customer_created_meanwhile_is_reused(self, db, guard, company, service, resource, ana, monkeypatch):
        existing = Customer(
            company_id=company.id, email="ana@example.com", first_name="Ana", total_bookings=1
        )
        db.add(existing)
        db.commit()
        existing_id = existing.id

        lookup = ScheduleRepository.get_customer_by_email
        calls = {"n": 0}

        def lookup_missing_first_time(session, company_id, email):
            calls["n"] += 1
            # The other booking's insert is not visible yet on the first read
            return None if calls["n"] == 1 else lookup(session, company_id, email)

        monkeypatch.setattr(ScheduleRepository, "get_customer_by_email", staticmethod(lookup_missing_first_time))

        booking = guard.create_booking(service.id, resource.id, monday(9), ana)

        assert booking.status == CONFIRMED
        assert booking.customer_id == existing_id
        assert db.query(Customer).count() == 1
        assert db.get(Customer, existing_id).total_bookings == 2


class TestReschedule:
    def test_moves_booking_and_rotates_token(self, guard, make_booking):
        booking = make_booking(monday(9))
        old_token = booking.reschedule_token

        moved = guard.reschedule(booking, monday(11))

        assert moved.start_time == monday(11)
        assert moved.end_time == monday(12)
        assert moved.reschedule_token != old_token

    def test_may_overlap_its_own_old_interval(self, guard, make_booking):
        booking = make_booking(monday(9))
        moved = guard.reschedule(booking, monday(9, 30))
        assert moved.start_time == monday(9, 30)

    def test_conflict_leaves_booking_untouched(self, db, guard, make_booking):
        booking = make_booking(monday(9))
        make_booking(monday(11))
        old_token = booking.reschedule_token

        with pytest.raises(ConflictError):
            guard.reschedule(booking, monday(10, 30))

        db.refresh(booking)
        assert booking.start_time == monday(9)
        assert booking.end_time == monday(10)
        assert booking.reschedule_token == old_token

    def test_past_start(self, guard, make_booking, clock):
        booking = make_booking(monday(9))
        with pytest.raises(ValidationError):
            guard.reschedule(booking, clock.now() - timedelta(minutes=5))
