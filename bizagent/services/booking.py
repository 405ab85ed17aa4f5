"""
Booking service - reserves and releases slots.

Per slot: AVAILABLE -> RESERVED on book_slot(), RESERVED -> AVAILABLE only on
cancel_booking(). A booking claims the store row conditionally (only while
still available) before it touches the remote calendar, so only the winner of
two concurrent bookings ever writes the event. A per-slot Redis lock keeps
the loser from getting that far when Redis is reachable.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from bizagent.config import Settings, get_settings
from bizagent.errors import ConflictError, NotFoundError, RemoteServiceError
from bizagent.integrations.calendar_base import CalendarProvider
from bizagent.models.time_slot import TimeSlot
from bizagent.schemas.calendar import CalendarEventData, Requester, SLOT_KIND_BOOKING
from bizagent.services.slot_store import SlotStore
from bizagent.utils.locks import slot_lock
from bizagent.utils.timezone import local_now, slot_window

logger = logging.getLogger(__name__)

CANCELLATION_DELETE = "delete"
CANCELLATION_KEEP = "keep"


def booking_title(requester: Requester) -> str:
    if requester.company:
        return f"Stretnutie s {requester.name} ({requester.company})"
    return f"Stretnutie s {requester.name}"


def booking_description(requester: Requester) -> str:
    lines = [f"Stretnutie s {requester.name}" + (f" z {requester.company}" if requester.company else "")]
    lines.append(f"Email: {requester.email}")
    if requester.phone:
        lines.append(f"Telefón: {requester.phone}")
    lines.append("")
    lines.append(f"Poznámky: {requester.message or 'Žiadne poznámky'}")
    lines.append("")
    lines.append("Rezervované cez Biz-Agent")
    return "\n".join(lines)


class BookingService:

    def __init__(
        self,
        store: SlotStore,
        provider: CalendarProvider,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        cancellation_policy: Optional[str] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.provider = provider
        self.tz_name = settings.calendar_timezone
        self.organizer_email = settings.calendar_organizer_email
        self.cancellation_policy = cancellation_policy or settings.calendar_cancellation_policy
        if self.cancellation_policy not in (CANCELLATION_DELETE, CANCELLATION_KEEP):
            raise ValueError(f"Unknown cancellation policy: {self.cancellation_policy}")
        self.clock = clock or (lambda: local_now(self.tz_name))
        self.lock_ttl = settings.slot_lock_ttl_seconds
        self.lock_wait = settings.slot_lock_wait_seconds

    def _lock(self, slot: TimeSlot):
        return slot_lock(slot.slot_date, slot.time_of_day, ttl=self.lock_ttl, wait=self.lock_wait)

    async def _get_slot(self, slot_id: str) -> TimeSlot:
        slot = await self.store.get(slot_id)
        if slot is None:
            raise NotFoundError(f"Slot {slot_id} not found")
        return slot

    def _event_data(self, slot: TimeSlot, requester: Requester) -> CalendarEventData:
        start, end = slot_window(slot.slot_date, slot.time_of_day, self.tz_name)
        attendees = [requester.email]
        if self.organizer_email and self.organizer_email != requester.email:
            attendees.append(self.organizer_email)
        return CalendarEventData(
            title=booking_title(requester),
            description=booking_description(requester),
            start=start,
            end=end,
            attendees=attendees,
            slot_kind=SLOT_KIND_BOOKING,
            create_meeting_link=True,
        )

    async def _write_remote_event(self, slot: TimeSlot, event: CalendarEventData) -> str:
        """
        Put the booking into the external calendar, reusing the linked event
        when there is one. Returns the event id; raises RemoteServiceError.
        """
        if slot.remote_event_id:
            fields = {
                "title": event.title,
                "description": event.description,
                "attendees": event.attendees,
                "slot_kind": event.slot_kind,
            }
            try:
                result = await self.provider.update_event(slot.remote_event_id, fields)
            except Exception as e:
                result = {"success": False, "error": str(e), "not_found": False}
            if result.get("success"):
                return slot.remote_event_id
            if not result.get("not_found"):
                raise RemoteServiceError(
                    f"Failed to update calendar event for slot {slot.key}",
                    provider_error=result.get("error"),
                )
            logger.info(
                "Linked calendar event is gone, creating a new one",
                extra={"slot_id": slot.id, "remote_event_id": slot.remote_event_id},
            )

        try:
            result = await self.provider.create_event(event)
        except Exception as e:
            result = {"success": False, "event_id": None, "error": str(e)}
        if not result.get("success") or not result.get("event_id"):
            raise RemoteServiceError(
                f"Failed to create calendar event for slot {slot.key}",
                provider_error=result.get("error"),
            )
        return result["event_id"]

    async def book_slot(self, slot_id: str, requester: Requester) -> bool:
        """
        Reserve a slot for `requester`.

        The store row is claimed first, conditional on it still being
        available, and only the claimant touches the remote calendar. A
        failed remote write reverts the claim and restores the previous
        event link, so nothing partial persists.

        Raises NotFoundError, ConflictError (already booked or lost the race)
        or RemoteServiceError (calendar unreachable, slot left available).
        """
        slot = await self._get_slot(slot_id)

        async with self._lock(slot):
            await self.store.reload(slot)
            if not slot.available:
                raise ConflictError(f"Slot {slot.key} is already booked")

            previous_event_id = slot.remote_event_id
            claimed = await self.store.claim(
                slot,
                booked_by=requester.name,
                booked_at=self.clock(),
                remote_event_id=previous_event_id,
                booked_email=requester.email,
            )
            if not claimed:
                logger.warning(
                    "Lost booking race for slot %s", slot.key,
                    extra={"slot_id": slot.id, "remote_event_id": previous_event_id},
                )
                raise ConflictError(f"Slot {slot.key} is already booked")

            event = self._event_data(slot, requester)
            try:
                event_id = await self._write_remote_event(slot, event)
            except RemoteServiceError:
                await self.store.release(slot, remote_event_id=previous_event_id)
                raise

            if event_id != previous_event_id:
                await self.store.update_fields(slot, remote_event_id=event_id)

        logger.info(
            "Slot %s booked by %s", slot.key, requester.name,
            extra={"slot_id": slot.id, "remote_event_id": event_id, "provider": self.provider.name},
        )
        return True

    async def cancel_booking(self, slot_id: str) -> bool:
        """
        Release a booked slot. With the `delete` policy the linked remote
        event is removed first; if that fails nothing changes locally.
        """
        slot = await self._get_slot(slot_id)

        async with self._lock(slot):
            await self.store.reload(slot)
            if slot.available:
                raise ConflictError(f"Slot {slot.key} is not booked")

            event_id = slot.remote_event_id
            if event_id and self.cancellation_policy == CANCELLATION_DELETE:
                try:
                    result = await self.provider.delete_event(event_id)
                except Exception as e:
                    result = {"success": False, "error": str(e), "not_found": False}
                if not result.get("success") and not result.get("not_found"):
                    raise RemoteServiceError(
                        f"Failed to delete calendar event for slot {slot.key}",
                        provider_error=result.get("error"),
                    )

            released = await self.store.release(slot)
            if not released:
                raise ConflictError(f"Slot {slot.key} is not booked")

        logger.info(
            "Booking for slot %s cancelled (policy=%s)", slot.key, self.cancellation_policy,
            extra={"slot_id": slot.id, "remote_event_id": event_id},
        )
        return True
