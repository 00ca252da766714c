"""Injectable time source"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Returns the current time as naive UTC, the storage convention for all timestamps"""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


system_clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a fixed clock"""
    return system_clock
