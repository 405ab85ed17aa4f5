"""
Tests for bizagent/services/slot_generation.py - bulk generation and capacity.
"""
import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock

from bizagent.schemas.calendar import SLOT_KIND_AVAILABILITY

MONDAY = date(2025, 6, 9)
ALLOWED_TIMES = {"10:00", "11:00", "13:00", "14:00", "15:00"}


def _mock_throttle() -> MagicMock:
    throttle = MagicMock()
    throttle.wait = AsyncMock()
    return throttle


class TestGenerateBulk:
    async def test_generates_five_on_empty_store(self, ctx, provider):
        """5 rows, 5 distinct (date, time) pairs, weekdays only, allowed times only."""
        result = await ctx.generation.generate_bulk(5)

        slots = await ctx.store.list()
        assert result.created == 5
        assert result.remote_events_created == 5
        assert result.errors == 0
        assert len(slots) == 5
        assert len({(s.slot_date, s.time_of_day) for s in slots}) == 5
        assert all(s.slot_date.weekday() < 5 for s in slots)
        assert {s.time_of_day for s in slots} <= ALLOWED_TIMES

    async def test_starts_next_monday_in_time_order(self, ctx):
        """Generation walks week, weekday, then time of day from next Monday."""
        await ctx.generation.generate_bulk(7)

        slots = await ctx.store.list()
        assert [(s.slot_date, s.time_of_day) for s in slots] == [
            (MONDAY, "10:00"), (MONDAY, "11:00"), (MONDAY, "13:00"),
            (MONDAY, "14:00"), (MONDAY, "15:00"),
            (date(2025, 6, 10), "10:00"), (date(2025, 6, 10), "11:00"),
        ]

    async def test_skips_weekends(self, ctx):
        await ctx.generation.generate_bulk(30)

        slots = await ctx.store.list()
        assert date(2025, 6, 14) not in {s.slot_date for s in slots}
        assert date(2025, 6, 16) in {s.slot_date for s in slots}

    async def test_links_placeholder_events(self, ctx, provider):
        """Every new slot gets a placeholder event that does not occupy it."""
        await ctx.generation.generate_bulk(2)

        slots = await ctx.store.list()
        for slot in slots:
            event = provider.events[slot.remote_event_id]
            assert event.slot_kind == SLOT_KIND_AVAILABILITY
            assert event.summary == f"Dostupné časové okno - Pondelok {slot.time_of_day}"
            assert slot.available is True

    async def test_second_call_never_collides(self, ctx):
        """Rows from a prior call are skipped, never duplicated."""
        await ctx.generation.generate_bulk(5)
        result = await ctx.generation.generate_bulk(5)

        slots = await ctx.store.list()
        assert result.created == 5
        assert len(slots) == 10
        assert len({(s.slot_date, s.time_of_day) for s in slots}) == 10

    async def test_skips_existing_rows(self, ctx):
        await ctx.store.create(MONDAY, "10:00")

        await ctx.generation.generate_bulk(2)

        slots = await ctx.store.list()
        assert [(s.slot_date, s.time_of_day) for s in slots] == [
            (MONDAY, "10:00"), (MONDAY, "11:00"), (MONDAY, "13:00"),
        ]

    async def test_remote_failure_counted_and_continues(self, ctx):
        """A failed placeholder leaves the slot unlinked and the run goes on."""
        ctx.generation.provider = AsyncMock()
        ctx.generation.provider.name = "mock"
        ctx.generation.provider.create_event = AsyncMock(side_effect=[
            {"success": True, "event_id": "evt_1"},
            {"success": False, "event_id": None, "error": "quota", "retry_after": None},
            RuntimeError("connection reset"),
        ])

        result = await ctx.generation.generate_bulk(3)

        slots = await ctx.store.list()
        assert result.created == 3
        assert result.remote_events_created == 1
        assert result.errors == 2
        assert [s.remote_event_id for s in slots] == ["evt_1", None, None]

    async def test_throttle_awaited_after_every_attempt(self, ctx):
        throttle = _mock_throttle()
        ctx.generation.throttle = throttle

        await ctx.generation.generate_bulk(4)

        assert throttle.wait.await_count == 4

    async def test_retry_after_triggers_backoff(self, ctx):
        throttle = _mock_throttle()
        ctx.generation.throttle = throttle
        ctx.generation.provider = AsyncMock()
        ctx.generation.provider.name = "mock"
        ctx.generation.provider.create_event = AsyncMock(return_value={
            "success": False, "event_id": None, "error": "Rate limit exceeded", "retry_after": 30.0,
        })

        await ctx.generation.generate_bulk(1)

        throttle.backoff.assert_called_once_with(30.0)

    async def test_cancel_event_stops_run(self, ctx):
        cancel = asyncio.Event()
        cancel.set()

        result = await ctx.generation.generate_bulk(5, cancel_event=cancel)

        assert result.cancelled is True
        assert result.created == 0

    async def test_zero_target(self, ctx):
        result = await ctx.generation.generate_bulk(0)
        assert result.created == 0
        assert await ctx.store.list() == []


class TestCheckAndEnsureCapacity:
    async def test_low_capacity_generates(self, ctx):
        report = await ctx.generation.check_and_ensure_capacity()

        assert report.generated is True
        assert report.open_future_slots == 0
        assert report.generation.created == 100

    async def test_second_call_is_noop_once_floor_reached(self, ctx):
        """With the default batch one pass on an empty store clears the floor."""
        first = await ctx.generation.check_and_ensure_capacity()
        second = await ctx.generation.check_and_ensure_capacity()

        assert first.generated is True
        assert second.generated is False
        assert second.open_future_slots >= 25
        assert len(await ctx.store.list()) == 100

    async def test_both_calls_generate_while_below_floor(self, ctx):
        """A batch that lands inside the lead window leaves capacity low."""
        ctx.generation.batch_size = 5

        first = await ctx.generation.check_and_ensure_capacity()
        second = await ctx.generation.check_and_ensure_capacity()

        assert first.generated is True
        assert second.generated is True
        assert len(await ctx.store.list()) == 10

    async def test_booked_slots_do_not_count(self, ctx):
        """Only available slots beyond the lead window count toward the floor."""
        for day in range(16, 21):
            for time_of_day in ("10:00", "11:00", "13:00", "14:00", "15:00"):
                await ctx.store.create(date(2025, 6, day), time_of_day, available=False)
        ctx.generation.batch_size = 1

        report = await ctx.generation.check_and_ensure_capacity()

        assert report.open_future_slots == 0
        assert report.generated is True
