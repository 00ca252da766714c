"""
Lifecycle service - Token-driven booking state machine

    PENDING ──confirm──▶ CONFIRMED ──▶ COMPLETED | NO_SHOW
       │                    │
       └──────cancel────────┴──▶ CANCELLED

CANCELLED, COMPLETED and NO_SHOW are terminal. Each public action is bound to
its own token column and looked up by exact match only.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ...models import CANCELLED, COMPLETED, CONFIRMED, NO_SHOW, PENDING, Booking
from ...shared.clock import Clock, system_clock
from ...shared.errors import InvalidTransitionError, NotFoundError, TokenExpiredError
from .booking_guard import RESCHEDULABLE_STATUSES, BookingGuard
from .repository import ScheduleRepository
from .schemas import BookingSummary

logger = logging.getLogger(__name__)

VALID_TRANSITIONS = {
    PENDING: [CONFIRMED, CANCELLED],
    CONFIRMED: [CANCELLED, COMPLETED, NO_SHOW],
    CANCELLED: [],  # Terminal state
    COMPLETED: [],  # Terminal state
    NO_SHOW: [],  # Terminal state
}


def validate_status_transition(current_status: str, new_status: str) -> bool:
    """
    Check a booking status change against the state machine.

    Setting the current status again is allowed as a no-op.
    """
    if current_status == new_status:
        return True
    return new_status in VALID_TRANSITIONS.get(current_status, [])


def build_summary(booking: Booking) -> BookingSummary:
    company = booking.company
    return BookingSummary(
        bookingId=booking.id,
        status=booking.status,
        startTime=booking.start_time,
        endTime=booking.end_time,
        serviceName=booking.service.name,
        resourceName=booking.resource.name if booking.resource else None,
        customerName=booking.customer_name,
        companyName=company.name,
        companySlug=company.slug,
        customDomain=company.custom_domain,
    )


class BookingLifecycleService:
    """Applies confirm, cancel, reschedule and dashboard status changes"""

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.repo = ScheduleRepository()
        self.guard = BookingGuard(db, clock)

    def confirm_by_token(self, token: str) -> Booking:
        """Confirm a PENDING booking. The token is single-use."""
        booking = self.repo.get_booking_by_confirmation_token(self.db, token)
        if not booking or booking.status != PENDING:
            logger.warning("⚠️ Confirmation with unknown or consumed token")
            raise TokenExpiredError()

        # Conditional update so two concurrent clicks cannot both consume the token
        if not self.repo.consume_confirmation_token(self.db, token):
            self.db.rollback()
            raise TokenExpiredError()
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"✅ Booking {booking.id} confirmed by customer")
        return booking

    def cancel_by_token(self, token: str) -> Booking:
        """
        Cancel a booking. Repeating the call on a cancelled booking succeeds.

        The cancellation token survives so the link keeps working; the
        confirmation and reschedule tokens no longer apply and are cleared.
        """
        booking = self.repo.get_booking_by_cancellation_token(self.db, token)
        if not booking:
            raise TokenExpiredError()

        if booking.status == CANCELLED:
            logger.info(f"ℹ️ Booking {booking.id} already cancelled")
            return booking
        if booking.status not in (PENDING, CONFIRMED):
            raise InvalidTransitionError(f"Cannot cancel a booking with status {booking.status}")

        self._cancel(booking)
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"🚫 Booking {booking.id} cancelled by customer")
        return booking

    def reschedule_by_token(self, token: str, new_start_time: datetime) -> Booking:
        """Move a booking; the reschedule token rotates on success and survives a conflict"""
        booking = self.repo.get_booking_by_reschedule_token(self.db, token)
        if not booking:
            raise TokenExpiredError()
        if booking.status not in RESCHEDULABLE_STATUSES:
            raise InvalidTransitionError(f"Cannot reschedule a booking with status {booking.status}")

        return self.guard.reschedule(booking, new_start_time, token=token)

    def get_by_cancellation_token(self, token: str) -> Booking:
        booking = self.repo.get_booking_by_cancellation_token(self.db, token)
        if not booking:
            raise TokenExpiredError()
        return booking

    def get_by_reschedule_token(self, token: str) -> Booking:
        booking = self.repo.get_booking_by_reschedule_token(self.db, token)
        if not booking:
            raise TokenExpiredError()
        return booking

    def update_status(self, company_id: int, booking_id: int, status: str) -> Booking:
        """Dashboard status change, scoped to the owning company"""
        booking = self.repo.get_booking(self.db, booking_id, company_id)
        if not booking:
            raise NotFoundError("Booking not found")

        current = booking.status
        if not validate_status_transition(current, status):
            raise InvalidTransitionError(f"Cannot change booking status from {current} to {status}")
        if current == status:
            return booking

        if status == CANCELLED:
            self._cancel(booking)
        else:
            booking.status = status
            if status == CONFIRMED:
                booking.confirmation_token = None
            elif status in (COMPLETED, NO_SHOW):
                booking.confirmation_token = None
                booking.reschedule_token = None

        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"✅ Booking {booking.id} status {current} → {status} (company {company_id})")
        return booking

    @staticmethod
    def _cancel(booking: Booking) -> None:
        booking.status = CANCELLED
        booking.confirmation_token = None
        booking.reschedule_token = None
