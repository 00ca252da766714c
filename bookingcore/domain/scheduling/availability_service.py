"""
Availability service - Bookable slot calculation

Slots are derived from three inputs per resource: weekly working-hour rules,
existing non-cancelled bookings and blockouts. Candidates start at the range
start and advance by a fixed step; each candidate lasts the service duration
and is emitted once per resource that can take it.

Listing is advisory only. The booking guard re-checks the interval inside a
locked transaction, so a slot shown here can still be lost to a concurrent
booking.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ...config import MAX_SLOT_RANGE_DAYS, SLOT_STEP_MINUTES
from ...models import CANCELLED, Availability, Resource
from ...shared.clock import Clock, system_clock
from ...shared.errors import NotFoundError, ValidationError
from ...shared.validators import to_utc_naive
from .repository import ScheduleRepository
from .schemas import Slot
from .time_calculator import build_interval_indexes, day_of_week, rule_contains, to_local

logger = logging.getLogger(__name__)


def _group_rules(rules: Iterable[Availability]) -> dict[int, dict[int, list[Availability]]]:
    """Index usable rules by resource, then by day of week"""
    grouped: dict[int, dict[int, list[Availability]]] = defaultdict(lambda: defaultdict(list))
    for rule in rules:
        if rule.is_available:
            grouped[rule.resource_id][rule.day_of_week].append(rule)
    return grouped


def compute_slots(
    duration_minutes: int,
    resources: list[Resource],
    rules: Iterable[Availability],
    bookings: Iterable,
    blockouts: Iterable,
    range_start: datetime,
    range_end: datetime,
    step_minutes: int = SLOT_STEP_MINUTES,
    tz: ZoneInfo = ZoneInfo("UTC"),
    earliest_start: Optional[datetime] = None,
) -> list[Slot]:
    """
    Calculate bookable slots for the given resources.

    Pure function: every input is passed in and nothing is written. Timestamps
    are naive UTC; rules are wall-clock times in `tz`.

    Args:
        duration_minutes: Length of each slot
        resources: Eligible resources, in the order slots should be reported
        rules: Weekly working-hour rules for those resources
        bookings: Existing bookings (cancelled ones are ignored)
        blockouts: Blocked periods
        range_start: First candidate start
        range_end: No candidate may end after this
        step_minutes: Distance between candidate starts
        tz: Company timezone the rules are expressed in
        earliest_start: Candidates starting at or before this are dropped

    Returns:
        Slots ordered by start time, then by resource order
    """
    if duration_minutes <= 0:
        raise ValidationError("Service duration must be positive")
    if step_minutes <= 0:
        raise ValidationError("Slot step must be positive")
    if not resources:
        return []

    rules_by_resource = _group_rules(rules)
    busy = build_interval_indexes(b for b in bookings if b.status != CANCELLED)
    blocked = build_interval_indexes(blockouts)

    duration = timedelta(minutes=duration_minutes)
    step = timedelta(minutes=step_minutes)

    slots: list[Slot] = []
    start = range_start
    while start + duration <= range_end:
        if earliest_start is not None and start <= earliest_start:
            start += step
            continue
        end = start + duration
        local_start = to_local(start, tz)
        local_end = to_local(end, tz)
        weekday = day_of_week(local_start)

        for resource in resources:
            day_rules = rules_by_resource.get(resource.id, {}).get(weekday, ())
            if not any(
                rule_contains(rule.start_time, rule.end_time, local_start, local_end)
                for rule in day_rules
            ):
                continue
            if resource.id in busy and busy[resource.id].overlaps(start, end):
                continue
            if resource.id in blocked and blocked[resource.id].overlaps(start, end):
                continue
            slots.append(Slot(start=start, end=end, resource_id=resource.id))

        start += step

    return slots


class AvailabilityService:
    """Service layer for slot listing"""

    def __init__(self, db: Session, clock: Clock = system_clock):
        self.db = db
        self.clock = clock
        self.repo = ScheduleRepository()

    def get_slots(
        self,
        service_id: int,
        start: datetime,
        end: datetime,
        resource_id: Optional[int] = None,
        step_minutes: int = SLOT_STEP_MINUTES,
    ) -> list[Slot]:
        """Get bookable slots for a service in [start, end)"""
        start = to_utc_naive(start)
        end = to_utc_naive(end)
        if end <= start:
            raise ValidationError("End date must be after start date")
        if end - start > timedelta(days=MAX_SLOT_RANGE_DAYS):
            raise ValidationError(f"Date range cannot exceed {MAX_SLOT_RANGE_DAYS} days")

        service = self.repo.get_service(self.db, service_id)
        if not service or not service.is_active:
            raise NotFoundError("Service not found")

        resources = [r for r in service.resources if r.is_active]
        if resource_id is not None:
            resources = [r for r in resources if r.id == resource_id]
        if not resources:
            logger.info(f"📭 No eligible resources for service {service_id}")
            return []

        resource_ids = [r.id for r in resources]
        rules = self.repo.get_availabilities(self.db, resource_ids)
        bookings = self.repo.get_active_bookings(self.db, resource_ids, start, end)
        blockouts = self.repo.get_blockouts(self.db, resource_ids, start, end)

        slots = compute_slots(
            service.duration,
            resources,
            rules,
            bookings,
            blockouts,
            start,
            end,
            step_minutes=step_minutes,
            tz=ZoneInfo(service.company.timezone),
            # Slots that already started cannot be booked
            earliest_start=self.clock.now(),
        )
        logger.info(
            f"📅 {len(slots)} slots for service {service_id} "
            f"across {len(resources)} resources ({start} → {end})"
        )
        return slots
