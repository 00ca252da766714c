"""Scheduling router - FastAPI endpoints for slots and the booking lifecycle"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...shared.clock import Clock, get_clock
from .schemas import (
    BookingCreate,
    BookingResponse,
    BookingStatusUpdate,
    BookingSummary,
    RescheduleRequest,
    RescheduleResponse,
    SlotResponse,
    TokenRequest,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Bookings"])


def get_booking_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db, clock)


# ============================================================================
# PUBLIC BOOKING ENDPOINTS
# ============================================================================


@router.get("/bookings/slots", response_model=list[SlotResponse])
async def get_slots(
    serviceId: int = Query(...),
    startDate: datetime = Query(...),
    endDate: datetime = Query(...),
    resourceId: Optional[int] = Query(None),
    service: BookingService = Depends(get_booking_service),
):
    """Bookable slots for a service. Advisory: creation re-checks the interval."""
    slots = service.get_slots(serviceId, startDate, endDate, resource_id=resourceId)
    return [SlotResponse(start=s.start, end=s.end, resourceId=s.resource_id) for s in slots]


@router.post("/bookings", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Book a slot. Returns 409 if the slot was taken in the meantime."""
    return await service.create_booking(data)


@router.post("/bookings/confirm", response_model=BookingSummary)
async def confirm_booking(
    data: TokenRequest,
    service: BookingService = Depends(get_booking_service),
):
    return await service.confirm_by_token(data.token)


@router.post("/bookings/cancel", response_model=BookingSummary)
async def cancel_booking(
    data: TokenRequest,
    service: BookingService = Depends(get_booking_service),
):
    return service.cancel_by_token(data.token)


@router.post("/bookings/reschedule", response_model=RescheduleResponse)
async def reschedule_booking(
    data: RescheduleRequest,
    service: BookingService = Depends(get_booking_service),
):
    return await service.reschedule_by_token(data.token, data.newStartTime)


@router.get("/bookings/by-cancel-token/{token}", response_model=BookingSummary)
async def get_booking_by_cancel_token(
    token: str,
    service: BookingService = Depends(get_booking_service),
):
    return service.get_by_cancellation_token(token)


@router.get("/bookings/by-reschedule-token/{token}", response_model=BookingSummary)
async def get_booking_by_reschedule_token(
    token: str,
    service: BookingService = Depends(get_booking_service),
):
    return service.get_by_reschedule_token(token)


# ============================================================================
# DASHBOARD
# ============================================================================


@router.patch("/companies/{company_id}/bookings/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    company_id: int,
    booking_id: int,
    data: BookingStatusUpdate,
    service: BookingService = Depends(get_booking_service),
):
    """Change a booking's status (confirm, cancel, complete, no-show)"""
    return service.update_status(company_id, booking_id, data.status)
