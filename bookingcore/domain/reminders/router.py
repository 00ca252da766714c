"""Reminders router - Reminder configuration CRUD and the cron trigger"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ...config import CRON_SECRET
from ...database import get_db
from ...models import ReminderConfig
from ...services.notification_service import NotificationSender, get_notification_sender
from ...shared.clock import Clock, get_clock
from ...tick_lock import TickLock, get_tick_lock
from .schemas import ReminderConfigCreate, ReminderConfigResponse, ReminderConfigToggle, TickResult
from .service import ReminderConfigService, ReminderScheduler, run_locked_tick

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Reminders"])


def get_reminder_config_service(db: Session = Depends(get_db)) -> ReminderConfigService:
    """Dependency injection for ReminderConfigService"""
    return ReminderConfigService(db)


def get_reminder_scheduler(
    db: Session = Depends(get_db),
    sender: NotificationSender = Depends(get_notification_sender),
    clock: Clock = Depends(get_clock),
) -> ReminderScheduler:
    return ReminderScheduler(db, sender, clock)


def get_cron_secret() -> Optional[str]:
    return CRON_SECRET


def verify_cron_secret(
    authorization: Optional[str] = Header(None),
    cron_secret: Optional[str] = Depends(get_cron_secret),
) -> None:
    """Require `Authorization: Bearer <CRON_SECRET>`; with no secret configured nothing passes"""
    if not cron_secret:
        logger.error("❌ Cron call rejected: CRON_SECRET is not configured")
        raise HTTPException(status_code=401, detail="Unauthorized")
    expected = f"Bearer {cron_secret}"
    if not authorization or not secrets.compare_digest(authorization.encode(), expected.encode()):
        logger.warning("⚠️ Cron call rejected: invalid authorization")
        raise HTTPException(status_code=401, detail="Unauthorized")


def to_config_response(config: ReminderConfig) -> ReminderConfigResponse:
    return ReminderConfigResponse(
        id=config.id,
        companyId=config.company_id,
        timeValue=config.time_value,
        timeUnit=config.time_unit,
        channel=config.channel,
        isActive=config.is_active,
        created_at=config.created_at,
    )


# ============================================================================
# REMINDER CONFIGURATION
# ============================================================================


@router.get("/companies/{company_id}/reminders", response_model=list[ReminderConfigResponse])
async def list_reminders(
    company_id: int,
    service: ReminderConfigService = Depends(get_reminder_config_service),
):
    return [to_config_response(c) for c in service.list_configs(company_id)]


@router.post(
    "/companies/{company_id}/reminders", response_model=ReminderConfigResponse, status_code=201
)
async def create_reminder(
    company_id: int,
    data: ReminderConfigCreate,
    service: ReminderConfigService = Depends(get_reminder_config_service),
):
    return to_config_response(service.create_config(company_id, data))


@router.patch(
    "/companies/{company_id}/reminders/{config_id}", response_model=ReminderConfigResponse
)
async def toggle_reminder(
    company_id: int,
    config_id: int,
    data: ReminderConfigToggle,
    service: ReminderConfigService = Depends(get_reminder_config_service),
):
    """Enable or disable a reminder"""
    return to_config_response(service.toggle_config(company_id, config_id, data.isActive))


@router.delete("/companies/{company_id}/reminders/{config_id}")
async def delete_reminder(
    company_id: int,
    config_id: int,
    service: ReminderConfigService = Depends(get_reminder_config_service),
):
    return service.delete_config(company_id, config_id)


# ============================================================================
# CRON TRIGGER
# ============================================================================


@router.post("/cron/reminders", response_model=TickResult, dependencies=[Depends(verify_cron_secret)])
async def run_reminders(
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
    lock: TickLock = Depends(get_tick_lock),
):
    """External trigger for one reminder tick"""
    return await run_locked_tick(scheduler, lock)
