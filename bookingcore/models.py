from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Booking statuses
PENDING = "PENDING"
CONFIRMED = "CONFIRMED"
CANCELLED = "CANCELLED"
COMPLETED = "COMPLETED"
NO_SHOW = "NO_SHOW"
BOOKING_STATUSES = (PENDING, CONFIRMED, CANCELLED, COMPLETED, NO_SHOW)

# Reminder log statuses
LOG_SUCCESS = "SUCCESS"
LOG_FAILED = "FAILED"

TIME_UNITS = ("MINUTES", "HOURS", "DAYS")
CHANNELS = ("EMAIL", "SMS", "WHATSAPP")
RESOURCE_TYPES = ("STAFF", "EQUIPMENT", "FACILITY")


service_resources = Table(
    "service_resources",
    Base.metadata,
    Column("service_id", Integer, ForeignKey("services.id", ondelete="CASCADE"), primary_key=True),
    Column("resource_id", Integer, ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True),
)


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, index=True, nullable=False)
    custom_domain = Column(String(255), unique=True, nullable=True)
    timezone = Column(String(64), default="UTC", nullable=False)  # IANA name, used for working hours
    # When set, new bookings start PENDING and the customer gets a confirmation link
    requires_booking_confirmation = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    services = relationship("Service", back_populates="company")
    resources = relationship("Resource", back_populates="company")
    reminder_configs = relationship("ReminderConfig", back_populates="company")


class Service(Base):
    __tablename__ = "services"
    __table_args__ = (CheckConstraint("duration > 0", name="ck_services_duration_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    company = relationship("Company", back_populates="services")
    resources = relationship(
        "Resource", secondary=service_resources, back_populates="services", order_by="Resource.id"
    )


class Resource(Base):
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(20), default="STAFF", nullable=False)  # STAFF, EQUIPMENT, FACILITY
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    company = relationship("Company", back_populates="resources")
    services = relationship("Service", secondary=service_resources, back_populates="resources")
    availabilities = relationship(
        "Availability", back_populates="resource", cascade="all, delete-orphan"
    )
    blockouts = relationship("Blockout", back_populates="resource", cascade="all, delete-orphan")


class Availability(Base):
    """Weekly working-hour rule. Several rules per day are allowed and evaluated as a union."""

    __tablename__ = "availabilities"

    id = Column(Integer, primary_key=True, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday ... 6 = Saturday
    start_time = Column(String(5), nullable=False)  # HH:MM, company local time
    end_time = Column(String(5), nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)

    resource = relationship("Resource", back_populates="availabilities")


class Blockout(Base):
    __tablename__ = "blockouts"

    id = Column(Integer, primary_key=True, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    reason = Column(String(255), nullable=True)  # vacation, maintenance, ...

    resource = relationship("Resource", back_populates="blockouts")


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("company_id", "email", name="uq_customers_company_email"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), default="", nullable=False)
    phone = Column(String(50), nullable=True)
    total_bookings = Column(Integer, default=0, nullable=False)
    last_booking_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # Backstop for the guard: an identical start on one resource can never be double-booked
        Index(
            "uq_bookings_resource_start_active",
            "resource_id",
            "start_time",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
        Index("ix_bookings_company_status_start", "company_id", "status", "start_time"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String(20), default=PENDING, nullable=False)

    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)

    # Independent lifecycle tokens - null once consumed or not applicable
    confirmation_token = Column(String(64), unique=True, nullable=True)
    cancellation_token = Column(String(64), unique=True, nullable=True)
    reschedule_token = Column(String(64), unique=True, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    company = relationship("Company")
    service = relationship("Service")
    resource = relationship("Resource")
    customer = relationship("Customer")
    reminder_logs = relationship("BookingReminderLog", back_populates="booking")


class ReminderConfig(Base):
    __tablename__ = "reminder_configs"
    __table_args__ = (CheckConstraint("time_value >= 1", name="ck_reminder_configs_time_value"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    time_value = Column(Integer, nullable=False)
    time_unit = Column(String(10), nullable=False)  # MINUTES, HOURS, DAYS
    channel = Column(String(20), default="EMAIL", nullable=False)  # EMAIL, SMS, WHATSAPP
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    company = relationship("Company", back_populates="reminder_configs")


class BookingReminderLog(Base):
    """Append-only record of reminder attempts"""

    __tablename__ = "booking_reminder_logs"
    __table_args__ = (
        # Idempotency key: one successful reminder per (booking, config)
        Index(
            "uq_reminder_logs_success",
            "booking_id",
            "reminder_config_id",
            unique=True,
            postgresql_where=text("status = 'SUCCESS'"),
            sqlite_where=text("status = 'SUCCESS'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    reminder_config_id = Column(
        Integer, ForeignKey("reminder_configs.id", ondelete="CASCADE"), nullable=False
    )
    channel = Column(String(20), nullable=False)
    status = Column(String(10), nullable=False)  # SUCCESS, FAILED
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    booking = relationship("Booking", back_populates="reminder_logs")
