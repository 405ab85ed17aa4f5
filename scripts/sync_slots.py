"""
Sync slots from the calendar once and print what changed.

Usage:
    python -m scripts.sync_slots
    python -m scripts.sync_slots --capacity    # also top up open slots
    python -m scripts.sync_slots --events 14   # list remote events for the next 14 days
"""
import argparse
import asyncio
import logging

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def sync(capacity: bool = False, events_days: int = 0) -> None:
    from bizagent.database import async_session_factory
    from bizagent.services.calendar_context import build_calendar_context

    async with async_session_factory() as db:
        ctx = build_calendar_context(db)

        if events_days:
            for event in await ctx.admin.list_remote_events(events_days):
                logger.info(
                    "%s  %s  %s  kind=%s",
                    event.start.isoformat(), event.id, event.summary, event.slot_kind or "-",
                )

        result = await ctx.reconciliation.sync_from_remote()
        if result.error:
            logger.error("Sync failed: %s", result.error)
        else:
            logger.info(
                "Sync done: checked=%d updated=%d skipped=%d",
                result.checked, result.updated, result.skipped,
            )

        if capacity:
            report = await ctx.generation.check_and_ensure_capacity()
            logger.info(
                "Capacity: open_future=%d floor=%d generated=%s",
                report.open_future_slots, report.floor, report.generated,
            )


def main():
    parser = argparse.ArgumentParser(description="Sync slots from the remote calendar")
    parser.add_argument("--capacity", action="store_true", help="Run the capacity check after syncing")
    parser.add_argument("--events", type=int, default=0, metavar="DAYS", help="List remote events first")
    args = parser.parse_args()
    asyncio.run(sync(capacity=args.capacity, events_days=args.events))


if __name__ == "__main__":
    main()
