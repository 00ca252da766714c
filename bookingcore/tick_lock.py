"""
Single-flight lock for the reminder tick

The SUCCESS unique index stops two ticks from recording the same reminder
twice, but it cannot take back a message that was already sent. Every tick
trigger (ARQ cron and the HTTP endpoint) therefore runs under this lock.

The lock is a Redis key set with NX and a TTL, owned through a random token,
and released with a compare-and-delete script so an expired holder cannot
remove a successor's lock.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import redis

from .config import TICK_LOCK_TTL_SECONDS
from .redis_client import get_redis_client
from .shared.errors import UpstreamError

logger = logging.getLogger(__name__)

TICK_LOCK_KEY = "bookingcore:reminder-tick"

RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
  return redis.call("del", KEYS[1])
else
  return 0
end
"""


class TickLock:
    def __init__(
        self,
        client_factory: Callable[[], redis.Redis] = get_redis_client,
        key: str = TICK_LOCK_KEY,
        ttl_seconds: int = TICK_LOCK_TTL_SECONDS,
    ):
        self.client_factory = client_factory
        self.key = key
        self.ttl_seconds = ttl_seconds

    def acquire(self) -> Optional[str]:
        """Take the lock; returns the owner token, or None if another tick holds it"""
        token = str(uuid.uuid4())
        try:
            acquired = self.client_factory().set(self.key, token, nx=True, ex=self.ttl_seconds)
        except (redis.RedisError, OSError) as e:
            logger.error(f"❌ Could not reach Redis for the tick lock: {e}")
            raise UpstreamError("Tick lock store is unavailable") from e
        return token if acquired else None

    def release(self, token: str) -> bool:
        try:
            released = self.client_factory().eval(RELEASE_SCRIPT, 1, self.key, token)
        except (redis.RedisError, OSError) as e:
            # The TTL frees the lock eventually
            logger.warning(f"⚠️ Failed to release tick lock: {e}")
            return False
        return bool(released)

    @contextmanager
    def hold(self) -> Iterator[bool]:
        """Yield True if this caller owns the lock for the block, False if it is busy"""
        token = self.acquire()
        try:
            yield token is not None
        finally:
            if token is not None:
                self.release(token)


def get_tick_lock() -> TickLock:
    """FastAPI dependency; tests override it"""
    return TickLock()
