"""Reminder repository - Database operations for reminder configs and logs"""

from datetime import datetime
from typing import Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session, joinedload

from ...models import (
    CONFIRMED,
    LOG_SUCCESS,
    Booking,
    BookingReminderLog,
    ReminderConfig,
)


class ReminderRepository:
    """Repository for reminder database operations"""

    @staticmethod
    def get_active_configs(db: Session) -> list[ReminderConfig]:
        return (
            db.query(ReminderConfig)
            .filter(ReminderConfig.is_active.is_(True))
            .order_by(ReminderConfig.company_id, ReminderConfig.id)
            .all()
        )

    @staticmethod
    def get_due_bookings(
        db: Session,
        company_id: int,
        config_id: int,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Booking]:
        """
        Confirmed bookings starting inside [window_start, window_end] (inclusive)
        that have no successful reminder for this config yet
        """
        already_sent = Booking.reminder_logs.any(
            and_(
                BookingReminderLog.reminder_config_id == config_id,
                BookingReminderLog.status == LOG_SUCCESS,
            )
        )
        return (
            db.query(Booking)
            .options(
                joinedload(Booking.company),
                joinedload(Booking.service),
                joinedload(Booking.resource),
            )
            .filter(
                Booking.company_id == company_id,
                Booking.status == CONFIRMED,
                Booking.start_time >= window_start,
                Booking.start_time <= window_end,
                ~already_sent,
            )
            .order_by(Booking.start_time, Booking.id)
            .all()
        )

    @staticmethod
    def add_log(
        db: Session,
        booking_id: int,
        config_id: int,
        channel: str,
        status: str,
        error: Optional[str] = None,
    ) -> BookingReminderLog:
        """Append a reminder attempt and commit it"""
        log = BookingReminderLog(
            booking_id=booking_id,
            reminder_config_id=config_id,
            channel=channel,
            status=status,
            error=error,
        )
        db.add(log)
        db.commit()
        return log

    @staticmethod
    def count_logs(db: Session, booking_id: int, config_id: int, status: Optional[str] = None) -> int:
        query = db.query(BookingReminderLog).filter(
            BookingReminderLog.booking_id == booking_id,
            BookingReminderLog.reminder_config_id == config_id,
        )
        if status is not None:
            query = query.filter(BookingReminderLog.status == status)
        return query.count()

    # Config management
    @staticmethod
    def get_configs(db: Session, company_id: int) -> list[ReminderConfig]:
        return (
            db.query(ReminderConfig)
            .filter(ReminderConfig.company_id == company_id)
            .order_by(ReminderConfig.created_at.desc(), ReminderConfig.id.desc())
            .all()
        )

    @staticmethod
    def get_config(db: Session, company_id: int, config_id: int) -> Optional[ReminderConfig]:
        return (
            db.query(ReminderConfig)
            .filter(ReminderConfig.id == config_id, ReminderConfig.company_id == company_id)
            .first()
        )

    @staticmethod
    def create_config(db: Session, company_id: int, **config_data) -> ReminderConfig:
        config = ReminderConfig(company_id=company_id, **config_data)
        db.add(config)
        db.commit()
        db.refresh(config)
        return config

    @staticmethod
    def update_config(db: Session, config: ReminderConfig, **updates) -> ReminderConfig:
        for key, value in updates.items():
            if value is not None and hasattr(config, key):
                setattr(config, key, value)
        db.commit()
        db.refresh(config)
        return config

    @staticmethod
    def delete_config(db: Session, config: ReminderConfig) -> None:
        """Delete a config together with its reminder history"""
        db.query(BookingReminderLog).filter(
            BookingReminderLog.reminder_config_id == config.id
        ).delete(synchronize_session=False)
        db.delete(config)
        db.commit()
