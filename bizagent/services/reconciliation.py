"""
Slot reconciliation - merges the slot store with the external calendar.

Two operations, two explicit authority policies:

- get_merged_slots(): read-only view. Availability follows the configured
  view authority (`store` by default); remote events only refresh the
  remote_event_id shown for each slot.
- sync_from_remote(): drift correction. The remote calendar is authoritative
  and the store is rewritten to match it. Meant for the maintenance worker,
  not the booking hot path.

An event id is never attached to two slots. A slot's stored link wins over
any other overlapping event, and an event linked to one slot is never offered
to another.
"""
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from bizagent.config import Settings, get_settings
from bizagent.integrations.calendar_base import CalendarProvider
from bizagent.models.time_slot import TimeSlot
from bizagent.schemas.calendar import CalendarEvent, SlotView, SyncResult
from bizagent.services.slot_store import SlotStore
from bizagent.utils.timezone import local_now, slot_window

logger = logging.getLogger(__name__)


class AuthorityPolicy(str, Enum):
    """Which side decides slot availability."""
    STORE = "store"
    REMOTE = "remote"


def to_view(slot: TimeSlot, **overrides) -> SlotView:
    view = SlotView(
        id=slot.id,
        date=slot.slot_date,
        day_name=slot.day_name,
        time=slot.time_of_day,
        available=slot.available,
        booked_by=slot.booked_by,
        booked_at=slot.booked_at,
        remote_event_id=slot.remote_event_id,
    )
    if overrides:
        view = view.model_copy(update=overrides)
    return view


class SlotReconciliationService:

    def __init__(
        self,
        store: SlotStore,
        provider: CalendarProvider,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        view_authority: Optional[AuthorityPolicy] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.provider = provider
        self.tz_name = settings.calendar_timezone
        self.horizon = timedelta(days=settings.calendar_sync_horizon_days)
        self.view_authority = AuthorityPolicy(view_authority or settings.calendar_view_authority)
        self.clock = clock or (lambda: local_now(self.tz_name))

    async def _fetch_events(self, start: datetime, end: datetime) -> Optional[list[CalendarEvent]]:
        """Remote events in [start, end), or None when the provider failed."""
        try:
            result = await self.provider.list_events(start, end)
        except Exception as e:
            logger.warning("Calendar list_events raised: %s", str(e), extra={"provider": self.provider.name})
            return None
        if not result.get("success"):
            logger.warning(
                "Failed to get calendar events: %s", result.get("error"),
                extra={"provider": self.provider.name},
            )
            return None
        return result.get("events", [])

    def _window(self, slot: TimeSlot) -> tuple[datetime, datetime]:
        return slot_window(slot.slot_date, slot.time_of_day, self.tz_name)

    @staticmethod
    def _pick(
        slot: TimeSlot,
        candidates: list[CalendarEvent],
        linked: dict[str, str],
        claimed: set[str],
    ) -> Optional[CalendarEvent]:
        """
        Choose the event to link to `slot`: its stored link if present among
        the candidates, otherwise the first candidate nobody else owns.
        """
        for event in candidates:
            if event.id == slot.remote_event_id:
                return event
        for event in candidates:
            if event.id in claimed:
                continue
            if linked.get(event.id, slot.id) != slot.id:
                continue
            return event
        return None

    async def get_merged_slots(self) -> list[SlotView]:
        """
        All store rows, ordered by date then time, enriched with the remote
        event overlapping each slot within the sync horizon. Falls back to the
        plain store rows when the provider is unreachable.
        """
        slots = await self.store.list()
        now = self.clock()
        horizon_end = now + self.horizon

        events = await self._fetch_events(now, horizon_end)
        if events is None:
            return [to_view(slot) for slot in slots]

        linked = {s.remote_event_id: s.id for s in slots if s.remote_event_id}
        claimed: set[str] = set()
        views: list[SlotView] = []

        for slot in slots:
            start, end = self._window(slot)
            if end <= now or start >= horizon_end:
                views.append(to_view(slot))
                continue

            overlapping = [e for e in events if e.overlaps(start, end)]
            occupying = [e for e in overlapping if not e.is_placeholder]
            # Occupying events first so a booking is preferred over a placeholder
            event = self._pick(slot, occupying + [e for e in overlapping if e.is_placeholder], linked, claimed)

            remote_event_id = event.id if event else slot.remote_event_id
            if remote_event_id:
                claimed.add(remote_event_id)

            overrides = {"remote_event_id": remote_event_id}
            if self.view_authority == AuthorityPolicy.REMOTE:
                overrides["available"] = not occupying
                if occupying:
                    overrides["booked_by"] = slot.booked_by or occupying[0].attendee_name()
                else:
                    overrides["booked_by"] = None
                    overrides["booked_at"] = None
            views.append(to_view(slot, **overrides))

        return views

    async def sync_from_remote(self) -> SyncResult:
        """
        Rewrite the store from the remote calendar.

        - occupying event overlaps -> booked (available=False)
        - only a placeholder overlaps -> available, linked to the placeholder
        - nothing overlaps -> available, all booking fields cleared

        Slots whose window already ended are skipped. Running twice with no
        remote change writes nothing the second time.
        """
        slots = await self.store.list()
        if not slots:
            return SyncResult()

        now = self.clock()
        latest_end = max(self._window(slot)[1] for slot in slots)
        events = await self._fetch_events(now, max(now + self.horizon, latest_end))
        if events is None:
            logger.warning("Calendar unreachable, skipping sync from remote")
            return SyncResult(error="calendar provider unavailable")

        linked = {s.remote_event_id: s.id for s in slots if s.remote_event_id}
        claimed: set[str] = set()
        result = SyncResult()

        for slot in slots:
            start, end = self._window(slot)
            if end <= now:
                result.skipped += 1
                continue
            result.checked += 1

            overlapping = [e for e in events if e.overlaps(start, end)]
            occupying = [e for e in overlapping if not e.is_placeholder]
            placeholders = [e for e in overlapping if e.is_placeholder]

            if occupying:
                event = self._pick(slot, occupying, linked, claimed)
                source = event or occupying[0]
                changes = {
                    "available": False,
                    "booked_by": slot.booked_by or source.attendee_name(),
                    "booked_at": slot.booked_at or source.created or now,
                    "remote_event_id": event.id if event else None,
                }
            else:
                event = self._pick(slot, placeholders, linked, claimed)
                changes = {
                    "available": True,
                    "booked_by": None,
                    "booked_email": None,
                    "booked_at": None,
                    "remote_event_id": event.id if event else None,
                }

            if event is not None:
                claimed.add(event.id)
            # Release the old link so another slot may take it later in this pass
            if slot.remote_event_id and slot.remote_event_id != changes["remote_event_id"]:
                linked.pop(slot.remote_event_id, None)

            if any(getattr(slot, name) != value for name, value in changes.items()):
                logger.info(
                    "Slot %s %s drifted from calendar, now available=%s",
                    slot.slot_date, slot.time_of_day, changes["available"],
                    extra={"slot_id": slot.id, "remote_event_id": changes["remote_event_id"]},
                )
                await self.store.update_fields(slot, **changes)
                result.updated += 1

        logger.info(
            "Sync from remote finished: checked=%d updated=%d skipped=%d",
            result.checked, result.updated, result.skipped,
        )
        return result
