"""
Slot maintenance worker - keeps the slot inventory healthy.

Each iteration:
  1. sync_from_remote() - pull bookings/cancellations made directly in the calendar
  2. check_and_ensure_capacity() - top up open slots when below the floor

Disabled by default (SLOT_MAINTENANCE_ENABLED=false); runs once per
SLOT_MAINTENANCE_INTERVAL_SECONDS (daily by default).
"""
import asyncio
import logging
from datetime import datetime, timezone

from bizagent.config import get_settings
from bizagent.database import async_session_factory
from bizagent.services.calendar_context import build_calendar_context
from bizagent.utils.logging import generate_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

HEARTBEAT_KEY = "bizagent:worker_health:slot_maintenance"


async def _heartbeat(interval_seconds: int):
    """Store heartbeat timestamp in Redis."""
    try:
        from bizagent.utils.redis_client import get_redis
        redis = await get_redis()
        await redis.set(
            HEARTBEAT_KEY,
            datetime.now(timezone.utc).isoformat(),
            ex=interval_seconds * 2,
        )
    except Exception:
        pass


async def run_slot_maintenance():
    """Main loop - sync then capacity check, once per interval."""
    settings = get_settings()
    interval = settings.slot_maintenance_interval_seconds
    logger.info("Slot maintenance worker started (every %ds)", interval)

    while True:
        set_correlation_id(generate_correlation_id())
        try:
            await run_maintenance_once()
        except Exception as e:
            logger.error("Slot maintenance error: %s", str(e))

        await _heartbeat(interval)
        await asyncio.sleep(interval)


async def run_maintenance_once() -> dict:
    """One maintenance pass. Returns the sync result and capacity report."""
    async with async_session_factory() as db:
        ctx = build_calendar_context(db)
        sync = await ctx.reconciliation.sync_from_remote()
        capacity = await ctx.generation.check_and_ensure_capacity()

    logger.info(
        "Slot maintenance done: synced=%d open_future=%d generated=%s",
        sync.updated, capacity.open_future_slots, capacity.generated,
    )
    return {"sync": sync, "capacity": capacity}
