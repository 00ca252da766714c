"""Reminder domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import CHANNELS, TIME_UNITS


class ReminderConfigCreate(BaseModel):
    """Schema for creating a reminder rule, e.g. 24 HOURS before by EMAIL"""

    timeValue: int
    timeUnit: str
    channel: str = "EMAIL"
    isActive: bool = True

    @field_validator("timeValue")
    @classmethod
    def validate_time_value(cls, v):
        if v < 1:
            raise ValueError("timeValue must be at least 1")
        return v

    @field_validator("timeUnit")
    @classmethod
    def validate_time_unit(cls, v):
        v = v.upper()
        if v not in TIME_UNITS:
            raise ValueError(f"timeUnit must be one of: {', '.join(TIME_UNITS)}")
        return v

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v):
        v = v.upper()
        if v not in CHANNELS:
            raise ValueError(f"channel must be one of: {', '.join(CHANNELS)}")
        return v


class ReminderConfigToggle(BaseModel):
    isActive: bool


class ReminderConfigResponse(BaseModel):
    id: int
    companyId: int
    timeValue: int
    timeUnit: str
    channel: str
    isActive: bool
    created_at: Optional[datetime] = None


class ReminderOutcome(BaseModel):
    """One reminder attempt within a tick"""

    bookingId: int
    configId: int
    channel: str
    status: str  # SUCCESS, FAILED, SKIPPED
    error: Optional[str] = None


class TickResult(BaseModel):
    """Summary of one scheduler tick"""

    ran: bool = True
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    details: list[ReminderOutcome] = []
