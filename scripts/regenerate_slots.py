"""
Regenerate consultation slots - optionally wipe the inventory, then create
new slots with placeholder events in the calendar.

Usage:
    python -m scripts.regenerate_slots                     # generate 100 slots
    python -m scripts.regenerate_slots --count 50
    python -m scripts.regenerate_slots --clear             # wipe store rows first
    python -m scripts.regenerate_slots --clear --remote    # also delete linked remote events
"""
import argparse
import asyncio
import logging
import signal

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def regenerate(count: int, clear: bool = False, remote: bool = False) -> None:
    from bizagent.database import async_session_factory
    from bizagent.services.calendar_context import build_calendar_context

    # Ctrl+C stops generation after the current slot instead of mid-write
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except NotImplementedError:
        pass

    async with async_session_factory() as db:
        ctx = build_calendar_context(db)

        if clear:
            cleared = await ctx.admin.clear_all_slots(delete_remote_events=remote)
            logger.info(
                "Cleared %d slots (remote events deleted=%d, errors=%d)",
                cleared.deleted, cleared.remote_events_deleted, cleared.remote_errors,
            )

        result = await ctx.generation.generate_bulk(count, cancel_event=cancel_event)

    logger.info(
        "Created %d slots, %d calendar events, %d errors%s",
        result.created, result.remote_events_created, result.errors,
        " (cancelled)" if result.cancelled else "",
    )


def main():
    parser = argparse.ArgumentParser(description="Regenerate consultation slots")
    parser.add_argument("--count", type=int, default=100, help="Number of slots to create")
    parser.add_argument("--clear", action="store_true", help="Delete all slots before generating")
    parser.add_argument(
        "--remote", action="store_true",
        help="With --clear, also delete the calendar events linked to the slots",
    )
    args = parser.parse_args()
    asyncio.run(regenerate(count=args.count, clear=args.clear, remote=args.remote))


if __name__ == "__main__":
    main()
