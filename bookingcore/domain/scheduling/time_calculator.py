"""Time parsing and interval calculations for scheduling"""

from bisect import bisect_left
from collections import defaultdict
from datetime import datetime, time, timedelta, timezone
from typing import Iterable
from zoneinfo import ZoneInfo

TIME_UNIT_DELTAS = {
    "MINUTES": timedelta(minutes=1),
    "HOURS": timedelta(hours=1),
    "DAYS": timedelta(days=1),
}


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap: touching intervals do not overlap"""
    return a_start < b_end and a_end > b_start


def parse_hhmm(value: str) -> time:
    """Parse "09:30" into a time object"""
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


def day_of_week(moment: datetime) -> int:
    """Day index with 0 = Sunday ... 6 = Saturday"""
    return (moment.weekday() + 1) % 7


def to_local(moment: datetime, tz: ZoneInfo) -> datetime:
    """Convert a naive UTC timestamp to wall-clock time in the given zone"""
    return moment.replace(tzinfo=timezone.utc).astimezone(tz)


def offset_delta(time_value: int, time_unit: str) -> timedelta:
    """Translate a reminder offset like (24, "HOURS") into a timedelta"""
    try:
        return TIME_UNIT_DELTAS[time_unit] * time_value
    except KeyError:
        raise ValueError(f"Unsupported time unit: {time_unit}") from None


class IntervalIndex:
    """
    Sorted, merged set of busy intervals supporting O(log n) overlap queries.

    Intervals that overlap or touch are merged on build, so the stored list is
    disjoint and its end times increase with its start times. A candidate
    [start, end) overlaps the union iff the last interval starting before `end`
    finishes after `start`.
    """

    def __init__(self, intervals: Iterable[tuple[datetime, datetime]] = ()):
        merged: list[list[datetime]] = []
        for start, end in sorted(intervals):
            if merged and start <= merged[-1][1]:
                merged[-1][1] = max(merged[-1][1], end)
            else:
                merged.append([start, end])
        self._starts = [m[0] for m in merged]
        self._ends = [m[1] for m in merged]

    def __len__(self) -> int:
        return len(self._starts)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        idx = bisect_left(self._starts, end) - 1
        return idx >= 0 and self._ends[idx] > start


def build_interval_indexes(items: Iterable, key: str = "resource_id") -> dict[int, IntervalIndex]:
    """Group rows with start_time/end_time by resource into interval indexes"""
    grouped: dict[int, list[tuple[datetime, datetime]]] = defaultdict(list)
    for item in items:
        grouped[getattr(item, key)].append((item.start_time, item.end_time))
    return {resource_id: IntervalIndex(spans) for resource_id, spans in grouped.items()}


def rule_contains(
    rule_start: str, rule_end: str, local_start: datetime, local_end: datetime
) -> bool:
    """
    True when [local_start, local_end) lies inside the rule's hours on local_start's date.

    A slot that runs past midnight never fits a same-day rule.
    """
    if local_end.date() != local_start.date():
        return False
    return (
        parse_hhmm(rule_start) <= local_start.time()
        and local_end.time() <= parse_hhmm(rule_end)
    )
