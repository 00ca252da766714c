"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import BOOKING_STATUSES
from ...shared.validators import to_utc_naive, validate_email


class Slot(BaseModel):
    """A bookable interval on one resource (naive UTC)"""

    start: datetime
    end: datetime
    resource_id: int


class SlotResponse(BaseModel):
    start: datetime
    end: datetime
    resourceId: int


class CustomerInfo(BaseModel):
    """Customer details captured on the public booking form"""

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Customer name is required")
        return v

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(v)


class BookingCreate(BaseModel):
    """Schema for creating a booking from a chosen slot"""

    serviceId: int
    resourceId: int
    startTime: datetime
    customer: CustomerInfo

    @field_validator("startTime")
    @classmethod
    def normalize_start(cls, v):
        return to_utc_naive(v)


class TokenRequest(BaseModel):
    token: str


class RescheduleRequest(BaseModel):
    token: str
    newStartTime: datetime

    @field_validator("newStartTime")
    @classmethod
    def normalize_start(cls, v):
        return to_utc_naive(v)


class BookingStatusUpdate(BaseModel):
    """Schema for a dashboard status change"""

    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        v = v.upper()
        if v not in BOOKING_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(BOOKING_STATUSES)}")
        return v


class BookingResponse(BaseModel):
    """Booking as returned to the customer who created it"""

    id: int
    status: str
    serviceId: int
    resourceId: int
    startTime: datetime
    endTime: datetime
    customerName: str
    customerEmail: Optional[str] = None
    customerPhone: Optional[str] = None
    requiresConfirmation: bool
    cancellationToken: Optional[str] = None
    rescheduleToken: Optional[str] = None


class BookingSummary(BaseModel):
    """What the public confirm/cancel/reschedule pages need to render"""

    bookingId: int
    status: str
    startTime: datetime
    endTime: datetime
    serviceName: str
    resourceName: Optional[str] = None
    customerName: str
    companyName: str
    companySlug: str
    customDomain: Optional[str] = None


class RescheduleResponse(BookingSummary):
    """Summary plus the freshly issued reschedule token"""

    rescheduleToken: str
