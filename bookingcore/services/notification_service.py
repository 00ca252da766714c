"""
Notification Service
Channel routing for reminders and the customer emails sent after booking changes
"""

import logging
from typing import Any, Awaitable, Callable, Optional

from ..domain.scheduling.token_service import build_booking_links
from ..email_service import (
    send_booking_confirmation_email,
    send_booking_reminder_email,
    send_booking_rescheduled_email,
    send_booking_success_email,
)
from ..models import PENDING, Booking
from ..shared.errors import UpstreamError

logger = logging.getLogger(__name__)

Handler = Callable[[str, dict], Awaitable[Any]]


async def send_reminder_email(recipient: str, template_data: dict) -> Any:
    return await send_booking_reminder_email(to=recipient, **template_data)


DEFAULT_HANDLERS: dict[str, Handler] = {
    "EMAIL": send_reminder_email,
}


class NotificationSender:
    """
    Delivers a reminder on one channel.

    Handlers are registered per channel; a channel without a handler is
    unsupported and callers are expected to check `supports` first.
    """

    def __init__(self, handlers: Optional[dict[str, Handler]] = None):
        self.handlers = dict(DEFAULT_HANDLERS if handlers is None else handlers)

    def supports(self, channel: str) -> bool:
        return channel in self.handlers

    async def send(self, channel: str, recipient: str, template_data: dict) -> None:
        """
        Send one message.

        Raises:
            UpstreamError: The channel is unsupported or the provider failed
        """
        handler = self.handlers.get(channel)
        if handler is None:
            raise UpstreamError(f"No notifier registered for channel {channel}")
        try:
            await handler(recipient, template_data)
        except Exception as e:
            raise UpstreamError(f"{channel} delivery to {recipient} failed: {e}") from e


default_sender = NotificationSender()


def get_notification_sender() -> NotificationSender:
    """FastAPI dependency; tests override it with a recording sender"""
    return default_sender


# ============================================
# Post-commit booking emails
# Failures are logged and reported as False: the booking already exists
# ============================================


def _email_context(booking: Booking) -> dict:
    company = booking.company
    links = build_booking_links(booking)
    return {
        "to": booking.customer_email,
        "customer_name": booking.customer_name,
        "company_name": company.name,
        "service_name": booking.service.name,
        "start_time": booking.start_time,
        "timezone_name": company.timezone,
        "reschedule_url": links["reschedule_url"],
        "cancel_url": links["cancel_url"],
    }


async def send_booking_created_notification(booking: Booking) -> bool:
    """Confirmation request for PENDING bookings, success email otherwise"""
    if not booking.customer_email:
        logger.debug(f"⚠️ No email address for booking {booking.id}, skipping notification")
        return False

    try:
        context = _email_context(booking)
        if booking.status == PENDING and booking.confirmation_token:
            confirm_url = build_booking_links(booking)["confirm_url"]
            await send_booking_confirmation_email(confirmation_url=confirm_url, **context)
        else:
            await send_booking_success_email(**context)
        logger.info(f"✅ Booking {booking.id} notification sent to {booking.customer_email}")
        return True
    except Exception as e:
        logger.error(f"❌ Failed to send booking {booking.id} notification: {e}")
        return False


async def send_booking_confirmed_notification(booking: Booking) -> bool:
    if not booking.customer_email:
        return False

    try:
        await send_booking_success_email(**_email_context(booking))
        logger.info(f"✅ Booking {booking.id} confirmed email sent to {booking.customer_email}")
        return True
    except Exception as e:
        logger.error(f"❌ Failed to send confirmed email for booking {booking.id}: {e}")
        return False


async def send_booking_rescheduled_notification(booking: Booking) -> bool:
    if not booking.customer_email:
        return False

    try:
        await send_booking_rescheduled_email(**_email_context(booking))
        logger.info(f"✅ Booking {booking.id} rescheduled email sent to {booking.customer_email}")
        return True
    except Exception as e:
        logger.error(f"❌ Failed to send rescheduled email for booking {booking.id}: {e}")
        return False
