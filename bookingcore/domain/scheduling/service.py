"""Booking service - Business logic for public booking operations"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ...models import Booking
from ...services.notification_service import (
    send_booking_confirmed_notification,
    send_booking_created_notification,
    send_booking_rescheduled_notification,
)
from ...shared.clock import Clock, system_clock
from .availability_service import AvailabilityService
from .booking_guard import BookingGuard
from .lifecycle_service import BookingLifecycleService, build_summary
from .schemas import BookingCreate, BookingResponse, BookingSummary, RescheduleResponse, Slot

logger = logging.getLogger(__name__)


def to_booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        status=booking.status,
        serviceId=booking.service_id,
        resourceId=booking.resource_id,
        startTime=booking.start_time,
        endTime=booking.end_time,
        customerName=booking.customer_name,
        customerEmail=booking.customer_email,
        customerPhone=booking.customer_phone,
        requiresConfirmation=booking.confirmation_token is not None,
        cancellationToken=booking.cancellation_token,
        rescheduleToken=booking.reschedule_token,
    )


class BookingService:
    """
    Service layer behind the booking endpoints.

    Writes go through BookingGuard and BookingLifecycleService; this layer
    adds the customer emails once the change is committed.
    """

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.availability = AvailabilityService(db, clock)
        self.guard = BookingGuard(db, clock)
        self.lifecycle = BookingLifecycleService(db, clock)

    def get_slots(self, service_id: int, start: datetime, end: datetime, resource_id=None) -> list[Slot]:
        return self.availability.get_slots(service_id, start, end, resource_id=resource_id)

    async def create_booking(self, data: BookingCreate) -> BookingResponse:
        """Create a booking and notify the customer"""
        logger.info(
            f"📥 Booking request: service {data.serviceId}, resource {data.resourceId}, {data.startTime}"
        )
        booking = self.guard.create_booking(
            data.serviceId, data.resourceId, data.startTime, data.customer
        )
        await send_booking_created_notification(booking)
        return to_booking_response(booking)

    async def confirm_by_token(self, token: str) -> BookingSummary:
        booking = self.lifecycle.confirm_by_token(token)
        await send_booking_confirmed_notification(booking)
        return build_summary(booking)

    def cancel_by_token(self, token: str) -> BookingSummary:
        return build_summary(self.lifecycle.cancel_by_token(token))

    async def reschedule_by_token(self, token: str, new_start_time: datetime) -> RescheduleResponse:
        booking = self.lifecycle.reschedule_by_token(token, new_start_time)
        await send_booking_rescheduled_notification(booking)
        summary = build_summary(booking)
        return RescheduleResponse(**summary.model_dump(), rescheduleToken=booking.reschedule_token)

    def get_by_cancellation_token(self, token: str) -> BookingSummary:
        return build_summary(self.lifecycle.get_by_cancellation_token(token))

    def get_by_reschedule_token(self, token: str) -> BookingSummary:
        return build_summary(self.lifecycle.get_by_reschedule_token(token))

    def update_status(self, company_id: int, booking_id: int, status: str) -> BookingResponse:
        return to_booking_response(self.lifecycle.update_status(company_id, booking_id, status))
