"""
In-memory calendar provider - "mock mode" when Google credentials are not
configured, and the provider used by tests.

Events live in a dict for the lifetime of the process. `failure_rate` lets a
developer simulate a flaky upstream (CALENDAR_MOCK_FAILURE_RATE, e.g. 0.03).
"""
import logging
import random
from datetime import datetime, timezone
from itertools import count
from typing import Optional

from bizagent.integrations.calendar_base import CalendarProvider
from bizagent.schemas.calendar import CalendarEvent, CalendarEventData

logger = logging.getLogger(__name__)


class InMemoryCalendarProvider(CalendarProvider):
    name = "in_memory"

    def __init__(self, failure_rate: float = 0.0, rng: Optional[random.Random] = None):
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()
        self._ids = count(1)
        self.events: dict[str, CalendarEvent] = {}

    def _should_fail(self) -> bool:
        return self.failure_rate > 0 and self._rng.random() < self.failure_rate

    def add_event(self, event: CalendarEvent) -> CalendarEvent:
        """Seed an event directly, as if someone created it in the calendar UI."""
        self.events[event.id] = event
        return event

    async def create_event(self, event: CalendarEventData) -> dict:
        if self._should_fail():
            logger.warning("Mock calendar event creation failed: %s", event.title)
            return {"success": False, "event_id": None, "meeting_link": None,
                    "error": "Mock calendar API error", "retry_after": None}

        event_id = f"mock_event_{next(self._ids)}"
        self.events[event_id] = CalendarEvent(
            id=event_id,
            summary=event.title,
            start=event.start,
            end=event.end,
            attendees=[{"email": email} for email in event.attendees],
            created=datetime.now(timezone.utc),
            slot_kind=event.slot_kind,
        )
        meeting_link = f"https://meet.example.com/{event_id}" if event.create_meeting_link else None
        logger.info("Mock calendar event created: %s", event_id, extra={"remote_event_id": event_id})
        return {"success": True, "event_id": event_id, "meeting_link": meeting_link,
                "error": None, "retry_after": None}

    async def update_event(self, event_id: str, fields: dict) -> dict:
        existing = self.events.get(event_id)
        if existing is None:
            return {"success": False, "event_id": event_id, "error": "Event not found",
                    "not_found": True, "retry_after": None}
        if self._should_fail():
            return {"success": False, "event_id": event_id, "error": "Mock calendar API error",
                    "not_found": False, "retry_after": None}

        changes = {}
        if fields.get("title") is not None:
            changes["summary"] = fields["title"]
        if fields.get("start") is not None:
            changes["start"] = fields["start"]
        if fields.get("end") is not None:
            changes["end"] = fields["end"]
        if fields.get("attendees") is not None:
            changes["attendees"] = [{"email": email} for email in fields["attendees"]]
        if fields.get("slot_kind") is not None:
            changes["slot_kind"] = fields["slot_kind"]
        self.events[event_id] = existing.model_copy(update=changes)
        return {"success": True, "event_id": event_id, "error": None,
                "not_found": False, "retry_after": None}

    async def delete_event(self, event_id: str) -> dict:
        if event_id not in self.events:
            return {"success": False, "error": "Event not found", "not_found": True}
        if self._should_fail():
            return {"success": False, "error": "Mock calendar API error", "not_found": False}
        del self.events[event_id]
        return {"success": True, "error": None, "not_found": False}

    async def list_events(self, start: datetime, end: datetime) -> dict:
        events = sorted(
            (e for e in self.events.values() if e.overlaps(start, end)),
            key=lambda e: e.start,
        )
        return {"success": True, "events": events, "error": None}
