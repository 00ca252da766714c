"""
Booking guard - The only writer of booking intervals

Every create and reschedule runs as one transaction that first locks the
resource row, then re-checks the interval against committed bookings and
blockouts, then writes. Writers for the same resource are serialized by that
lock; writers for different resources never wait on each other.

On SQLite the row lock is a no-op, but every transaction starts with
BEGIN IMMEDIATE (see database.py), which serializes writers database-wide.
The partial unique index on (resource_id, start_time) is the last line of
defence for identical starts.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ...config import BOOKING_LOCK_TIMEOUT_SECONDS
from ...models import CONFIRMED, PENDING, Booking, Service
from ...shared.clock import Clock, system_clock
from ...shared.errors import (
    BookingError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    TokenExpiredError,
    UpstreamError,
    ValidationError,
)
from ...shared.validators import to_utc_naive
from .repository import ScheduleRepository
from .schemas import CustomerInfo
from .time_calculator import IntervalIndex
from .token_service import generate_token

logger = logging.getLogger(__name__)

# PostgreSQL: lock_not_available, query_canceled
LOCK_TIMEOUT_PGCODES = {"55P03", "57014"}
RESCHEDULABLE_STATUSES = (PENDING, CONFIRMED)

# Partial unique index backing the no-double-booking invariant
SLOT_INDEX_NAME = "uq_bookings_resource_start_active"
# SQLite reports the violated columns instead of the index name
SLOT_INDEX_SQLITE_MESSAGE = "bookings.resource_id, bookings.start_time"


def is_lock_timeout(exc: OperationalError) -> bool:
    """True when the store gave up waiting for a lock held by another writer"""
    if getattr(exc.orig, "pgcode", None) in LOCK_TIMEOUT_PGCODES:
        return True
    return "database is locked" in str(exc.orig).lower()


def is_slot_violation(exc: IntegrityError) -> bool:
    """True when the insert or update hit the one-active-booking-per-start index"""
    diag = getattr(exc.orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None)
    if constraint:
        return constraint == SLOT_INDEX_NAME
    message = str(exc.orig)
    return SLOT_INDEX_NAME in message or SLOT_INDEX_SQLITE_MESSAGE in message


def translate_store_error(exc: Exception) -> BookingError:
    """Map a store failure raised inside a guarded transaction to a booking error"""
    if isinstance(exc, IntegrityError) and is_slot_violation(exc):
        return ConflictError()
    if isinstance(exc, OperationalError) and is_lock_timeout(exc):
        return ConflictError()
    return UpstreamError("The booking store is temporarily unavailable.")


class BookingGuard:
    """Creates and moves bookings without ever double-booking a resource"""

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.repo = ScheduleRepository()

    def create_booking(
        self, service_id: int, resource_id: int, start_time: datetime, customer: CustomerInfo
    ) -> Booking:
        """
        Book `start_time` on `resource_id` for `service_id`.

        The booking starts PENDING with a confirmation token when the company
        requires confirmation, otherwise CONFIRMED. Cancellation and reschedule
        tokens are always issued.

        Raises:
            NotFoundError: Unknown or inactive service, or resource not eligible
            ValidationError: Start time is not in the future
            ConflictError: Interval taken, or the resource lock could not be acquired
            UpstreamError: Any other store failure
        """
        start_time = to_utc_naive(start_time)
        now = self.clock.now()
        if start_time <= now:
            raise ValidationError("Booking start time must be in the future")

        try:
            service = self._get_bookable_service(service_id)
            if not any(r.id == resource_id and r.is_active for r in service.resources):
                raise NotFoundError("Resource not available for this service")

            end_time = start_time + timedelta(minutes=service.duration)
            company = service.company
            requires_confirmation = company.requires_booking_confirmation

            self._lock_resource(resource_id)
            self._ensure_free(resource_id, start_time, end_time)

            customer_row = None
            if customer.email:
                customer_row = self.repo.upsert_customer(
                    self.db, company.id, customer.email, customer.name, customer.phone, now
                )

            booking = Booking(
                company_id=company.id,
                service_id=service.id,
                resource_id=resource_id,
                customer=customer_row,
                start_time=start_time,
                end_time=end_time,
                status=PENDING if requires_confirmation else CONFIRMED,
                customer_name=customer.name,
                customer_email=customer.email,
                customer_phone=customer.phone,
                confirmation_token=generate_token() if requires_confirmation else None,
                cancellation_token=generate_token(),
                reschedule_token=generate_token(),
            )
            self.db.add(booking)
            self.db.commit()
        except BookingError as e:
            self.db.rollback()
            logger.warning(
                f"⚠️ Booking on resource {resource_id} at {start_time} rejected: {e.message}"
            )
            raise
        except (IntegrityError, OperationalError) as e:
            self.db.rollback()
            error = translate_store_error(e)
            logger.warning(f"⚠️ Booking create on resource {resource_id} aborted: {e.orig}")
            raise error from e

        self.db.refresh(booking)
        logger.info(
            f"✅ Booking {booking.id} created: resource {resource_id}, "
            f"{start_time} → {end_time}, status {booking.status}"
        )
        return booking

    def reschedule(
        self, booking: Booking, new_start_time: datetime, token: Optional[str] = None
    ) -> Booking:
        """
        Move a booking to a new start on the same resource, keeping its length.

        On success the reschedule token rotates. On conflict the transaction
        rolls back and the booking, token included, is left exactly as it was.
        When `token` is given it must still be the booking's reschedule token
        once the lock is held, so a link that was already used cannot move the
        booking again.
        """
        new_start = to_utc_naive(new_start_time)
        if new_start <= self.clock.now():
            raise ValidationError("Booking start time must be in the future")

        booking_id = booking.id
        resource_id = booking.resource_id
        new_end = new_start + (booking.end_time - booking.start_time)

        try:
            self._lock_resource(resource_id)
            # Re-read under the lock; a concurrent cancel may have landed
            self.db.refresh(booking)
            if token is not None and booking.reschedule_token != token:
                raise TokenExpiredError()
            if booking.status not in RESCHEDULABLE_STATUSES:
                raise InvalidTransitionError(
                    f"Cannot reschedule a booking with status {booking.status}"
                )
            self._ensure_free(resource_id, new_start, new_end, exclude_booking_id=booking_id)

            old_start = booking.start_time
            booking.start_time = new_start
            booking.end_time = new_end
            booking.reschedule_token = generate_token()
            self.db.commit()
        except BookingError:
            self.db.rollback()
            logger.warning(f"⚠️ Reschedule of booking {booking_id} to {new_start} rejected")
            raise
        except (IntegrityError, OperationalError) as e:
            self.db.rollback()
            error = translate_store_error(e)
            logger.warning(f"⚠️ Reschedule of booking {booking_id} aborted: {e.orig}")
            raise error from e

        self.db.refresh(booking)
        logger.info(f"🔁 Booking {booking_id} moved {old_start} → {new_start}")
        return booking

    def _get_bookable_service(self, service_id: int) -> Service:
        service = self.repo.get_service(self.db, service_id)
        if not service or not service.is_active:
            raise NotFoundError("Service not found")
        return service

    def _lock_resource(self, resource_id: int) -> None:
        """Serialize writers for this resource for the rest of the transaction"""
        if self.db.get_bind().dialect.name == "postgresql":
            timeout_ms = int(BOOKING_LOCK_TIMEOUT_SECONDS * 1000)
            self.db.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))
        if self.repo.lock_resource(self.db, resource_id) is None:
            raise NotFoundError("Resource not found")

    def _ensure_free(
        self,
        resource_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> None:
        """Raise ConflictError if [start, end) touches a live booking or blockout"""
        bookings = self.repo.get_active_bookings(
            self.db, [resource_id], start, end, exclude_booking_id=exclude_booking_id
        )
        blockouts = self.repo.get_blockouts(self.db, [resource_id], start, end)
        busy = IntervalIndex((row.start_time, row.end_time) for row in [*bookings, *blockouts])
        if busy.overlaps(start, end):
            raise ConflictError()
