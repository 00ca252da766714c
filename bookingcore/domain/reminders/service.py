"""
Reminder service - Periodic reminder dispatch and reminder configuration

Each tick looks ahead from `now` by every active config's offset and picks the
confirmed bookings starting in [now + offset, now + offset + tolerance]. A
booking leaves the candidate set for a config as soon as it has a SUCCESS log
for it, so overlapping windows of consecutive ticks never resend. FAILED
attempts stay eligible and are retried by later ticks while still in the
window.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import REMINDER_TICK_MINUTES, REMINDER_TOLERANCE_MINUTES
from ...models import LOG_FAILED, LOG_SUCCESS, Booking, Company
from ...services.notification_service import NotificationSender
from ...shared.clock import Clock, system_clock
from ...shared.errors import NotFoundError, UpstreamError
from ...shared.validators import to_utc_naive
from ...tick_lock import TickLock
from ..scheduling.time_calculator import offset_delta
from ..scheduling.token_service import build_booking_links
from .repository import ReminderRepository
from .schemas import ReminderConfigCreate, ReminderOutcome, TickResult

logger = logging.getLogger(__name__)

SKIPPED = "SKIPPED"


def recipient_for(booking: Booking, channel: str) -> Optional[str]:
    """Address to reach the customer on `channel`, or None if they gave none"""
    if channel == "EMAIL":
        return booking.customer_email
    return booking.customer_phone


def build_reminder_payload(booking: Booking) -> dict:
    """Template data handed to the notifier"""
    company = booking.company
    links = build_booking_links(booking)
    return {
        "customer_name": booking.customer_name,
        "company_name": company.name,
        "service_name": booking.service.name,
        "start_time": booking.start_time,
        "timezone_name": company.timezone,
        "provider_name": booking.resource.name if booking.resource else None,
        "confirm_url": links["confirm_url"],
        "reschedule_url": links["reschedule_url"],
        "cancel_url": links["cancel_url"],
    }


class ReminderScheduler:
    """Sends due reminders; the only writer of BookingReminderLog rows"""

    def __init__(
        self,
        db: Session,
        sender: NotificationSender,
        clock: Clock = system_clock,
        tolerance_minutes: int = REMINDER_TOLERANCE_MINUTES,
        tick_minutes: int = REMINDER_TICK_MINUTES,
    ):
        # A window narrower than the tick period lets bookings fall between ticks
        if tolerance_minutes < tick_minutes:
            raise ValueError(
                f"Reminder tolerance ({tolerance_minutes} min) must be at least "
                f"the tick period ({tick_minutes} min)"
            )
        self.db = db
        self.sender = sender
        self.clock = clock
        self.tolerance = timedelta(minutes=tolerance_minutes)
        self.repo = ReminderRepository()

    async def run_tick(self, now: Optional[datetime] = None) -> TickResult:
        """
        Run one scheduler pass.

        Args:
            now: Reference time (defaults to the clock); truncated to the minute

        Returns:
            TickResult with per-booking outcomes
        """
        now = to_utc_naive(now) if now is not None else self.clock.now()
        now = now.replace(second=0, microsecond=0)
        result = TickResult()

        configs = self.repo.get_active_configs(self.db)
        logger.info(f"⏰ Reminder tick at {now}: {len(configs)} active configs")

        for config in configs:
            if not self.sender.supports(config.channel):
                logger.warning(
                    f"⚠️ Reminder config {config.id} uses unsupported channel {config.channel}, skipping"
                )
                continue

            window_start = now + offset_delta(config.time_value, config.time_unit)
            window_end = window_start + self.tolerance
            bookings = self.repo.get_due_bookings(
                self.db, config.company_id, config.id, window_start, window_end
            )

            for booking in bookings:
                outcome = await self._dispatch(booking, config)
                result.details.append(outcome)
                if outcome.status == LOG_SUCCESS:
                    result.sent += 1
                elif outcome.status == LOG_FAILED:
                    result.failed += 1
                else:
                    result.skipped += 1

        logger.info(
            f"📊 Reminder tick complete: sent={result.sent}, failed={result.failed}, "
            f"skipped={result.skipped}"
        )
        return result

    async def _dispatch(self, booking: Booking, config) -> ReminderOutcome:
        """Send one reminder and record the attempt; never raises for delivery errors"""
        outcome = ReminderOutcome(
            bookingId=booking.id, configId=config.id, channel=config.channel, status=SKIPPED
        )
        recipient = recipient_for(booking, config.channel)
        if not recipient:
            logger.debug(f"⚠️ Booking {booking.id} has no {config.channel} recipient")
            outcome.error = "No recipient for channel"
            return outcome

        try:
            await self.sender.send(config.channel, recipient, build_reminder_payload(booking))
        except UpstreamError as e:
            logger.error(f"❌ Reminder for booking {booking.id} (config {config.id}) failed: {e.message}")
            self.repo.add_log(
                self.db, booking.id, config.id, config.channel, LOG_FAILED, error=e.message
            )
            outcome.status = LOG_FAILED
            outcome.error = e.message
            return outcome

        try:
            self.repo.add_log(self.db, booking.id, config.id, config.channel, LOG_SUCCESS)
        except IntegrityError:
            # Another tick recorded the success first
            self.db.rollback()
            logger.warning(f"⚠️ Reminder for booking {booking.id} (config {config.id}) already recorded")
        else:
            logger.info(f"✅ Reminder sent for booking {booking.id} (config {config.id})")
        outcome.status = LOG_SUCCESS
        return outcome


async def run_locked_tick(
    scheduler: ReminderScheduler, lock: TickLock, now: Optional[datetime] = None
) -> TickResult:
    """Run a tick unless another one is in progress"""
    with lock.hold() as acquired:
        if not acquired:
            logger.info("⏭️ Reminder tick already running elsewhere, skipping")
            return TickResult(ran=False)
        return await scheduler.run_tick(now)


class ReminderConfigService:
    """Service layer for reminder configuration"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ReminderRepository()

    def list_configs(self, company_id: int):
        return self.repo.get_configs(self.db, company_id)

    def create_config(self, company_id: int, data: ReminderConfigCreate):
        if not self.db.query(Company).filter(Company.id == company_id).first():
            raise NotFoundError("Company not found")

        config = self.repo.create_config(
            self.db,
            company_id,
            time_value=data.timeValue,
            time_unit=data.timeUnit,
            channel=data.channel,
            is_active=data.isActive,
        )
        logger.info(
            f"✅ Reminder config {config.id} created for company {company_id}: "
            f"{config.time_value} {config.time_unit} via {config.channel}"
        )
        return config

    def get_config(self, company_id: int, config_id: int):
        config = self.repo.get_config(self.db, company_id, config_id)
        if not config:
            raise NotFoundError("Reminder not found")
        return config

    def toggle_config(self, company_id: int, config_id: int, is_active: bool):
        config = self.get_config(company_id, config_id)
        config = self.repo.update_config(self.db, config, is_active=is_active)
        logger.info(f"🔁 Reminder config {config_id} {'enabled' if is_active else 'disabled'}")
        return config

    def delete_config(self, company_id: int, config_id: int) -> dict:
        config = self.get_config(company_id, config_id)
        self.repo.delete_config(self.db, config)
        logger.info(f"🗑️ Reminder config {config_id} deleted (company {company_id})")
        return {"message": "Reminder deleted"}
