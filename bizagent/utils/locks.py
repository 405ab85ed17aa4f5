"""
Per-slot booking lock on top of redis-py's Lock.

Keyed by the slot's date and time of day, so a booking addressed by uuid and
one addressed by the composite "YYYY-MM-DD-HH:MM" id contend for the same
lock. The conditional claim in SlotStore is what actually prevents a double
booking; the lock only keeps a second requester from doing remote work for a
slot that is about to be taken. When Redis is unreachable booking proceeds
without it.
"""
import logging
from contextlib import asynccontextmanager
from datetime import date

from redis.exceptions import LockError, RedisError

from bizagent.errors import ConflictError

logger = logging.getLogger(__name__)


class LockTimeoutError(ConflictError):
    """Another booking attempt holds the slot."""


def slot_lock_key(slot_date: date, time_of_day: str) -> str:
    return f"bizagent:lock:slot:{slot_date.isoformat()}-{time_of_day}"


@asynccontextmanager
async def slot_lock(slot_date: date, time_of_day: str, ttl: float, wait: float):
    """
    Hold the booking lock for one slot.

        async with slot_lock(slot.slot_date, slot.time_of_day, ttl=30, wait=5):
            ...

    Raises LockTimeoutError when the lock is still held after `wait` seconds.
    """
    name = slot_lock_key(slot_date, time_of_day)
    lock = await _try_acquire(name, ttl, wait)
    if lock is False:
        raise LockTimeoutError(
            f"Slot {slot_date.isoformat()}-{time_of_day} is being booked by someone else"
        )
    try:
        yield
    finally:
        if lock is not None:
            await _release(lock, name)


async def _try_acquire(name: str, ttl: float, wait: float):
    """The acquired Lock, False if it is held elsewhere, None when Redis is down."""
    try:
        from bizagent.utils.redis_client import get_redis
        redis = await get_redis()
        lock = redis.lock(name, timeout=ttl, blocking_timeout=wait)
        acquired = await lock.acquire()
    except (RedisError, OSError) as e:
        logger.warning("Redis unavailable for %s (%s), booking without lock", name, str(e))
        return None

    return lock if acquired else False


async def _release(lock, name: str) -> None:
    try:
        await lock.release()
    except LockError:
        # TTL ran out while the booking was in flight
        logger.warning("Lock %s expired before release", name)
    except (RedisError, OSError) as e:
        logger.warning("Redis lock release failed for %s: %s", name, str(e))
