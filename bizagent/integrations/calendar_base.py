"""
Abstract calendar provider interface - every external calendar implements this.
Providers never raise for remote failures; they report them in the result
dict so batch callers can count and continue. Services decide what is fatal.
"""
from abc import ABC, abstractmethod
from datetime import datetime

from bizagent.schemas.calendar import CalendarEventData


class CalendarProvider(ABC):
    """Abstract base class for external calendar integrations."""

    name = "calendar"

    @abstractmethod
    async def create_event(self, event: CalendarEventData) -> dict:
        """
        Create an event.
        Returns: {"success": bool, "event_id": str|None, "meeting_link": str|None,
                  "error": str|None, "retry_after": float|None}
        """
        ...

    @abstractmethod
    async def update_event(self, event_id: str, fields: dict) -> dict:
        """
        Patch an event. `fields` holds any subset of CalendarEventData keys.
        Returns: {"success": bool, "event_id": str|None, "error": str|None,
                  "not_found": bool, "retry_after": float|None}
        """
        ...

    @abstractmethod
    async def delete_event(self, event_id: str) -> dict:
        """
        Delete an event.
        Returns: {"success": bool, "error": str|None, "not_found": bool}
        """
        ...

    @abstractmethod
    async def list_events(self, start: datetime, end: datetime) -> dict:
        """
        List events overlapping [start, end).
        Returns: {"success": bool, "events": list[CalendarEvent], "error": str|None}
        """
        ...

    async def test_connection(self) -> bool:
        return True
