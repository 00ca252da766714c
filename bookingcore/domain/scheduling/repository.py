"""Scheduling repository - Database operations for schedule rules and bookings"""

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ...models import (
    CANCELLED,
    CONFIRMED,
    PENDING,
    Availability,
    Blockout,
    Booking,
    Customer,
    Resource,
    Service,
)


class ScheduleRepository:
    """Read access to services, working-hour rules, blockouts and bookings"""

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        """Get a service with its eligible resources and company"""
        return (
            db.query(Service)
            .options(joinedload(Service.resources), joinedload(Service.company))
            .filter(Service.id == service_id)
            .first()
        )

    @staticmethod
    def get_availabilities(db: Session, resource_ids: list[int]) -> list[Availability]:
        """Get weekly rules for the given resources"""
        if not resource_ids:
            return []
        return (
            db.query(Availability)
            .filter(Availability.resource_id.in_(resource_ids))
            .order_by(Availability.resource_id, Availability.day_of_week, Availability.start_time)
            .all()
        )

    @staticmethod
    def get_active_bookings(
        db: Session,
        resource_ids: list[int],
        range_start: datetime,
        range_end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> list[Booking]:
        """Get non-cancelled bookings that overlap [range_start, range_end)"""
        if not resource_ids:
            return []
        query = db.query(Booking).filter(
            Booking.resource_id.in_(resource_ids),
            Booking.status != CANCELLED,
            Booking.start_time < range_end,
            Booking.end_time > range_start,
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.start_time).all()

    @staticmethod
    def get_blockouts(
        db: Session, resource_ids: list[int], range_start: datetime, range_end: datetime
    ) -> list[Blockout]:
        """Get blockouts that overlap [range_start, range_end)"""
        if not resource_ids:
            return []
        return (
            db.query(Blockout)
            .filter(
                Blockout.resource_id.in_(resource_ids),
                Blockout.start_time < range_end,
                Blockout.end_time > range_start,
            )
            .order_by(Blockout.start_time)
            .all()
        )

    @staticmethod
    def lock_resource(db: Session, resource_id: int) -> Optional[Resource]:
        """Take a row lock on the resource; writers for the same resource queue here"""
        return db.query(Resource).filter(Resource.id == resource_id).with_for_update().first()

    # Booking lookups
    @staticmethod
    def get_booking(db: Session, booking_id: int, company_id: Optional[int] = None) -> Optional[Booking]:
        query = db.query(Booking).filter(Booking.id == booking_id)
        if company_id is not None:
            query = query.filter(Booking.company_id == company_id)
        return query.first()

    @staticmethod
    def get_booking_by_confirmation_token(db: Session, token: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.confirmation_token == token).first()

    @staticmethod
    def get_booking_by_cancellation_token(db: Session, token: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.cancellation_token == token).first()

    @staticmethod
    def get_booking_by_reschedule_token(db: Session, token: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.reschedule_token == token).first()

    @staticmethod
    def consume_confirmation_token(db: Session, token: str) -> int:
        """Confirm the PENDING booking holding `token` and clear it; returns rows updated"""
        return (
            db.query(Booking)
            .filter(Booking.confirmation_token == token, Booking.status == PENDING)
            .update(
                {Booking.status: CONFIRMED, Booking.confirmation_token: None},
                synchronize_session=False,
            )
        )

    # Customers
    @staticmethod
    def get_customer_by_email(db: Session, company_id: int, email: str) -> Optional[Customer]:
        return (
            db.query(Customer)
            .filter(Customer.company_id == company_id, Customer.email == email)
            .first()
        )

    @staticmethod
    def upsert_customer(
        db: Session,
        company_id: int,
        email: str,
        name: str,
        phone: Optional[str],
        booked_at: datetime,
    ) -> Customer:
        """
        Create or update the CRM record for a booking; caller owns the transaction.

        The insert runs in a savepoint: a first booking by the same email on
        another resource may create the row concurrently, in which case the
        savepoint is rolled back and the existing row is used.
        """
        customer = ScheduleRepository.get_customer_by_email(db, company_id, email)
        if customer is None:
            first_name, _, last_name = name.partition(" ")
            try:
                with db.begin_nested():
                    customer = Customer(
                        company_id=company_id,
                        email=email,
                        first_name=first_name,
                        last_name=last_name,
                        phone=phone,
                        total_bookings=0,
                    )
                    db.add(customer)
            except IntegrityError:
                customer = ScheduleRepository.get_customer_by_email(db, company_id, email)
                if customer is None:
                    raise

        if phone:
            customer.phone = phone
        # Incremented in SQL so concurrent bookings do not lose counts
        customer.total_bookings = Customer.total_bookings + 1
        customer.last_booking_at = booked_at
        return customer
