"""
Calendar schemas - remote events, slot views, booking requests and
operation results exchanged between services, the API and scripts.
"""
from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field

# Private extended property written on every event this service creates
SLOT_KIND_AVAILABILITY = "availability"
SLOT_KIND_BOOKING = "booking"


class CalendarEventData(BaseModel):
    """Payload for creating or updating a remote event."""
    title: str
    description: str = ""
    start: datetime
    end: datetime
    attendees: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    slot_kind: Optional[str] = None
    create_meeting_link: bool = False


class CalendarEvent(BaseModel):
    """An event as returned by the provider's list call."""
    id: str
    summary: str = ""
    start: datetime
    end: datetime
    attendees: list[dict] = Field(default_factory=list)
    created: Optional[datetime] = None
    slot_kind: Optional[str] = None

    @property
    def is_placeholder(self) -> bool:
        """Availability placeholders advertise a slot; they do not occupy it."""
        return self.slot_kind == SLOT_KIND_AVAILABILITY

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and self.end > start

    def attendee_name(self) -> Optional[str]:
        """Best-effort display name of whoever booked the event."""
        for attendee in self.attendees:
            if attendee.get("organizer") or attendee.get("self"):
                continue
            name = attendee.get("displayName") or attendee.get("email")
            if name:
                return name
        return None


class Requester(BaseModel):
    """Contact details of the person booking a slot."""
    name: str = Field(..., min_length=2, max_length=200)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=255)
    phone: Optional[str] = None
    company: Optional[str] = None
    message: Optional[str] = None


class BookingRequest(Requester):
    slot_id: str


class SlotView(BaseModel):
    """Merged slot as served to the booking page and admin tooling."""
    id: str
    date: date
    day_name: str
    time: str
    available: bool
    booked_by: Optional[str] = None
    booked_at: Optional[datetime] = None
    remote_event_id: Optional[str] = None


class SlotInput(BaseModel):
    """One row of a bulk save. `id` is optional; rows match on (date, time) otherwise."""
    id: Optional[str] = None
    date: date
    time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    available: bool = True
    booked_by: Optional[str] = None
    booked_at: Optional[datetime] = None
    remote_event_id: Optional[str] = None


class SyncResult(BaseModel):
    checked: int = 0
    updated: int = 0
    skipped: int = 0
    error: Optional[str] = None


class GenerationResult(BaseModel):
    created: int = 0
    remote_events_created: int = 0
    errors: int = 0
    cancelled: bool = False


class CapacityReport(BaseModel):
    open_future_slots: int
    floor: int
    generated: bool
    generation: Optional[GenerationResult] = None


class ClearResult(BaseModel):
    deleted: int
    remote_events_deleted: int = 0
    remote_errors: int = 0


class SaveSlotsResult(BaseModel):
    slots: list[SlotView]
    remote_events_created: int = 0
    remote_events_deleted: int = 0
    remote_errors: int = 0


class SaveSlotsRequest(BaseModel):
    slots: list[SlotInput]


class GenerateRequest(BaseModel):
    count: int = Field(100, ge=1, le=500)
