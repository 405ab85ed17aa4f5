"""
Slot generation - keeps a rolling horizon of bookable slots.

check_and_ensure_capacity() is a stocking heuristic: when fewer than
`slot_capacity_floor` open slots exist at least `slot_capacity_lead_days`
ahead, a bulk generation run is started.

generate_bulk() walks Monday-Friday over the fixed time-of-day set, week by
week from next Monday. Each new slot is written to the store first, then a
placeholder event is created in the external calendar. Remote failures are
counted and never stop the run; store failures do. The throttle is awaited
after every remote call, success or not.
"""
import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Callable, Iterator, Optional

from bizagent.config import Settings, get_settings
from bizagent.integrations.calendar_base import CalendarProvider
from bizagent.models.time_slot import day_name_for
from bizagent.schemas.calendar import (
    CalendarEventData,
    CapacityReport,
    GenerationResult,
    SLOT_KIND_AVAILABILITY,
)
from bizagent.services.reconciliation import SlotReconciliationService
from bizagent.services.slot_store import SlotStore
from bizagent.utils.throttle import Throttle, build_throttle
from bizagent.utils.timezone import local_now, next_monday, slot_window

logger = logging.getLogger(__name__)

WORKDAYS = 5  # Monday..Friday


class SlotGenerationService:

    def __init__(
        self,
        store: SlotStore,
        provider: CalendarProvider,
        reconciliation: SlotReconciliationService,
        throttle: Optional[Throttle] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.provider = provider
        self.reconciliation = reconciliation
        self.throttle = throttle or build_throttle(
            settings.calendar_throttle_policy,
            settings.calendar_rate_limit_seconds,
            settings.calendar_burst,
        )
        self.tz_name = settings.calendar_timezone
        self.slot_times = list(settings.calendar_slot_times)
        self.capacity_floor = settings.slot_capacity_floor
        self.lead_days = settings.slot_capacity_lead_days
        self.batch_size = settings.slot_generation_batch_size
        self.max_weeks = settings.slot_generation_max_weeks
        self.clock = clock or (lambda: local_now(self.tz_name))

    def candidates(self, start_monday: date) -> Iterator[tuple[date, str]]:
        """(date, time) pairs in week, weekday, time-of-day order."""
        for week in range(self.max_weeks):
            for weekday in range(WORKDAYS):
                slot_date = start_monday + timedelta(weeks=week, days=weekday)
                for time_of_day in self.slot_times:
                    yield slot_date, time_of_day

    async def check_and_ensure_capacity(self) -> CapacityReport:
        """Generate a batch when open future inventory drops below the floor."""
        slots = await self.reconciliation.get_merged_slots()
        threshold = self.clock().date() + timedelta(days=self.lead_days)
        open_future = sum(1 for s in slots if s.available and s.date >= threshold)

        logger.info(
            "Slot capacity: total=%d open_future=%d floor=%d",
            len(slots), open_future, self.capacity_floor,
        )
        if open_future >= self.capacity_floor:
            return CapacityReport(open_future_slots=open_future, floor=self.capacity_floor, generated=False)

        logger.info("Low slot capacity (%d/%d), generating %d slots", open_future, self.capacity_floor, self.batch_size)
        generation = await self.generate_bulk(self.batch_size)
        return CapacityReport(
            open_future_slots=open_future,
            floor=self.capacity_floor,
            generated=True,
            generation=generation,
        )

    async def _create_remote_event(self, slot_date: date, time_of_day: str) -> dict:
        start, end = slot_window(slot_date, time_of_day, self.tz_name)
        day_name = day_name_for(slot_date)
        event = CalendarEventData(
            title=f"Dostupné časové okno - {day_name} {time_of_day}",
            description="Časové okno pre konzultáciu. Rezervujte si termín cez náš web.",
            start=start,
            end=end,
            slot_kind=SLOT_KIND_AVAILABILITY,
        )
        try:
            return await self.provider.create_event(event)
        except Exception as e:
            return {"success": False, "event_id": None, "error": str(e), "retry_after": None}

    async def generate_bulk(
        self,
        target_count: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GenerationResult:
        """
        Create up to `target_count` new slots, each with a placeholder event.
        Setting `cancel_event` stops the run before the next candidate.
        """
        result = GenerationResult()
        if target_count <= 0:
            return result

        start_monday = next_monday(self.clock().date())
        seen: set[tuple[date, str]] = set()
        logger.info("Generating %d slots from %s", target_count, start_monday.isoformat())

        for slot_date, time_of_day in self.candidates(start_monday):
            if result.created >= target_count:
                break
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Slot generation cancelled after %d slots", result.created)
                result.cancelled = True
                break

            key = (slot_date, time_of_day)
            if key in seen:
                continue
            seen.add(key)
            if await self.store.find_by_date_and_time(slot_date, time_of_day) is not None:
                continue

            slot = await self.store.create(slot_date, time_of_day, available=True)
            result.created += 1

            response = await self._create_remote_event(slot_date, time_of_day)
            if response.get("success") and response.get("event_id"):
                await self.store.update_fields(slot, remote_event_id=response["event_id"])
                result.remote_events_created += 1
            else:
                result.errors += 1
                logger.error(
                    "Failed to create calendar event for %s %s: %s",
                    slot_date, time_of_day, response.get("error"),
                    extra={"slot_id": slot.id, "provider": self.provider.name},
                )
                self.throttle.backoff(response.get("retry_after"))

            await self.throttle.wait()

        logger.info(
            "Slot generation done: created=%d remote_events=%d errors=%d",
            result.created, result.remote_events_created, result.errors,
        )
        return result
