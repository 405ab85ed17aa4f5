"""
Administrative slot operations used by the admin API and operator scripts.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from bizagent.config import Settings, get_settings
from bizagent.errors import InvalidSlotError, NotFoundError, RemoteServiceError
from bizagent.integrations.calendar_base import CalendarProvider
from bizagent.models.time_slot import TimeSlot
from bizagent.schemas.calendar import (
    CalendarEvent,
    CalendarEventData,
    ClearResult,
    SaveSlotsResult,
    SlotInput,
    SLOT_KIND_BOOKING,
)
from bizagent.services.reconciliation import to_view
from bizagent.services.slot_generation import WORKDAYS
from bizagent.services.slot_store import SlotStore
from bizagent.utils.throttle import Throttle, NoThrottle
from bizagent.utils.timezone import local_now, slot_window

logger = logging.getLogger(__name__)


class CalendarAdminService:

    def __init__(
        self,
        store: SlotStore,
        provider: CalendarProvider,
        settings: Optional[Settings] = None,
        throttle: Optional[Throttle] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.provider = provider
        self.throttle = throttle or NoThrottle()
        self.tz_name = settings.calendar_timezone
        self.slot_times = list(settings.calendar_slot_times)
        self.clock = clock or (lambda: local_now(self.tz_name))

    async def clear_all_slots(self, delete_remote_events: bool = False) -> ClearResult:
        """
        Delete every slot row. Remote events are left alone unless
        `delete_remote_events` is set, in which case linked events are deleted
        first on a best-effort basis.
        """
        remote_deleted = 0
        remote_errors = 0
        if delete_remote_events:
            for event_id in await self.store.linked_event_ids():
                try:
                    result = await self.provider.delete_event(event_id)
                except Exception as e:
                    result = {"success": False, "error": str(e), "not_found": False}
                if result.get("success") or result.get("not_found"):
                    remote_deleted += 1
                else:
                    remote_errors += 1
                    logger.error(
                        "Failed to delete calendar event: %s", result.get("error"),
                        extra={"remote_event_id": event_id, "provider": self.provider.name},
                    )
                await self.throttle.wait()

        deleted = await self.store.delete_all()
        logger.info(
            "Cleared %d slots (remote deleted=%d errors=%d)", deleted, remote_deleted, remote_errors,
        )
        return ClearResult(deleted=deleted, remote_events_deleted=remote_deleted, remote_errors=remote_errors)

    async def delete_event(self, remote_event_id: str) -> bool:
        """Delete one remote event. The store row linking to it is left as is."""
        try:
            result = await self.provider.delete_event(remote_event_id)
        except Exception as e:
            result = {"success": False, "error": str(e), "not_found": False}
        if result.get("not_found"):
            raise NotFoundError(f"Calendar event {remote_event_id} not found")
        if not result.get("success"):
            raise RemoteServiceError(
                f"Failed to delete calendar event {remote_event_id}",
                provider_error=result.get("error"),
            )
        logger.info("Deleted calendar event", extra={"remote_event_id": remote_event_id})
        return True

    def _validate(self, slots: list[SlotInput]) -> None:
        bad = [
            f"{s.date.isoformat()} {s.time}"
            for s in slots
            if s.time not in self.slot_times or s.date.weekday() >= WORKDAYS
        ]
        if bad:
            raise InvalidSlotError(f"Not a bookable slot: {', '.join(bad)}")

    def _blocked_event(self, slot: TimeSlot) -> CalendarEventData:
        start, end = slot_window(slot.slot_date, slot.time_of_day, self.tz_name)
        description = "Časové okno pre konzultáciu"
        if slot.booked_by:
            description += f"\nRezervované: {slot.booked_by}"
        return CalendarEventData(
            title=f"Konzultácia - {slot.day_name} {slot.time_of_day}",
            description=description,
            start=start,
            end=end,
            slot_kind=SLOT_KIND_BOOKING,
        )

    async def _occupy_remote(self, slot: TimeSlot, result: SaveSlotsResult) -> None:
        """Give a blocked slot an occupying event: reuse its placeholder or create one."""
        event = self._blocked_event(slot)
        if slot.remote_event_id:
            fields = {"title": event.title, "description": event.description, "slot_kind": event.slot_kind}
            try:
                response = await self.provider.update_event(slot.remote_event_id, fields)
            except Exception as e:
                response = {"success": False, "error": str(e), "not_found": False}
            await self.throttle.wait()
            if response.get("success"):
                return
            if not response.get("not_found"):
                self._remote_failed(slot, "update", response, result)
                return

        try:
            response = await self.provider.create_event(event)
        except Exception as e:
            response = {"success": False, "event_id": None, "error": str(e)}
        await self.throttle.wait()
        if response.get("success") and response.get("event_id"):
            await self.store.update_fields(slot, remote_event_id=response["event_id"])
            result.remote_events_created += 1
        else:
            self._remote_failed(slot, "create", response, result)

    async def _free_remote(self, slot: TimeSlot, result: SaveSlotsResult) -> None:
        """Delete the event that occupied a slot the admin just reopened."""
        try:
            response = await self.provider.delete_event(slot.remote_event_id)
        except Exception as e:
            response = {"success": False, "error": str(e), "not_found": False}
        await self.throttle.wait()
        if response.get("success") or response.get("not_found"):
            await self.store.update_fields(slot, remote_event_id=None)
            result.remote_events_deleted += 1
        else:
            self._remote_failed(slot, "delete", response, result)

    def _remote_failed(self, slot: TimeSlot, action: str, response: dict, result: SaveSlotsResult) -> None:
        result.remote_errors += 1
        self.throttle.backoff(response.get("retry_after"))
        logger.error(
            "Failed to %s calendar event for slot %s: %s", action, slot.key, response.get("error"),
            extra={"slot_id": slot.id, "remote_event_id": slot.remote_event_id, "provider": self.provider.name},
        )

    async def save_slots(self, slots: list[SlotInput]) -> SaveSlotsResult:
        """
        Bulk upsert, keyed by id with a fallback match on (date, time), then
        mirrored into the calendar. A slot that becomes blocked gets an
        occupying event so the next sync from remote keeps it blocked; a
        slot that is reopened loses the event that occupied it. Calendar
        failures are counted; the store rows are saved regardless.
        """
        self._validate(slots)
        result = SaveSlotsResult(slots=[])
        for data in slots:
            existing = await self.store.find_for_input(data)
            was_available = existing is None or existing.available

            slot = await self.store.upsert(data)
            if not slot.available and (was_available or not slot.remote_event_id):
                await self._occupy_remote(slot, result)
            elif slot.available and not was_available and slot.remote_event_id:
                await self._free_remote(slot, result)
            result.slots.append(to_view(slot))

        logger.info(
            "Saved %d slots (remote created=%d deleted=%d errors=%d)",
            len(result.slots), result.remote_events_created,
            result.remote_events_deleted, result.remote_errors,
        )
        return result

    async def list_remote_events(self, days: int = 28) -> list[CalendarEvent]:
        """Remote events from now until `days` ahead, for operator debugging."""
        now = self.clock()
        try:
            result = await self.provider.list_events(now, now + timedelta(days=days))
        except Exception as e:
            result = {"success": False, "error": str(e)}
        if not result.get("success"):
            raise RemoteServiceError("Failed to list calendar events", provider_error=result.get("error"))
        return result.get("events", [])
