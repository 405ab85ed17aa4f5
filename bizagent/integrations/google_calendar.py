"""
Google Calendar integration. Calendar API v3 over REST.

Auth: OAuth2 refresh token (client id + secret + refresh token from settings).
Access tokens are cached in memory and refreshed 5 minutes before expiry.
Docs: https://developers.google.com/calendar/api/v3/reference/events
All calls have 10-second timeout per project standard.
"""
import logging
import time
import uuid
from datetime import datetime, time as dt_time
from typing import Optional
from zoneinfo import ZoneInfo

import httpx
from dateutil import parser as date_parser

from bizagent.integrations.calendar_base import CalendarProvider
from bizagent.schemas.calendar import CalendarEvent, CalendarEventData

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
TIMEOUT = 10.0
TOKEN_REFRESH_MARGIN_SECONDS = 300
EVENT_SOURCE = "biz-agent"
LIST_PAGE_SIZE = 250


def _retry_after(response: httpx.Response) -> Optional[float]:
    """Rate-limit hint from a 429 / 403 rateLimitExceeded response."""
    if response.status_code not in (403, 429):
        return None
    if response.status_code == 403 and "rateLimitExceeded" not in response.text:
        return None
    header = response.headers.get("Retry-After")
    try:
        return float(header) if header else 1.0
    except ValueError:
        return 1.0


class GoogleCalendarProvider(CalendarProvider):
    """Google Calendar v3 REST integration."""

    name = "google"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        calendar_id: str = "primary",
        timezone_name: str = "Europe/Bratislava",
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.calendar_id = calendar_id
        self.timezone_name = timezone_name
        self._tz = ZoneInfo(timezone_name)
        self._access_token: Optional[str] = None
        self._token_expires_at: float = 0.0

    @property
    def _events_url(self) -> str:
        return f"{GOOGLE_CALENDAR_API}/calendars/{self.calendar_id}/events"

    async def _get_access_token(self) -> str:
        """Return a valid access token, refreshing it when close to expiry."""
        if self._access_token and time.monotonic() < self._token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
            return self._access_token

        logger.info("Refreshing Google Calendar access token")
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
            response.raise_for_status()
            tokens = response.json()

        access_token = tokens.get("access_token")
        if not access_token:
            raise ValueError("Google token endpoint returned no access_token")
        self._access_token = access_token
        self._token_expires_at = time.monotonic() + float(tokens.get("expires_in", 3600))
        return access_token

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> httpx.Response:
        token = await self._get_access_token()
        async with httpx.AsyncClient(timeout=TIMEOUT) as client:
            return await client.request(
                method,
                url,
                params=params,
                json=json,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": "application/json",
                },
            )

    def _event_body(self, fields: dict) -> dict:
        """Translate CalendarEventData fields into a Google event resource."""
        body: dict = {}
        if fields.get("title") is not None:
            body["summary"] = fields["title"]
        if fields.get("description") is not None:
            body["description"] = fields["description"]
        if fields.get("start") is not None:
            body["start"] = {"dateTime": fields["start"].isoformat(), "timeZone": self.timezone_name}
        if fields.get("end") is not None:
            body["end"] = {"dateTime": fields["end"].isoformat(), "timeZone": self.timezone_name}
        if fields.get("attendees") is not None:
            body["attendees"] = [{"email": email} for email in fields["attendees"]]
        if fields.get("location"):
            body["location"] = fields["location"]
        if fields.get("slot_kind"):
            body["extendedProperties"] = {
                "private": {"source": EVENT_SOURCE, "slotKind": fields["slot_kind"]}
            }
        return body

    async def create_event(self, event: CalendarEventData) -> dict:
        """Insert an event; requests a Meet link when asked to."""
        try:
            body = self._event_body(event.model_dump())
            body["reminders"] = {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},
                    {"method": "popup", "minutes": 30},
                ],
            }
            params = {"sendUpdates": "all"}
            if event.create_meeting_link:
                body["conferenceData"] = {
                    "createRequest": {
                        "requestId": f"meeting-{uuid.uuid4().hex}",
                        "conferenceSolutionKey": {"type": "hangoutsMeet"},
                    }
                }
                params["conferenceDataVersion"] = 1

            response = await self._request("POST", self._events_url, params=params, json=body)
            retry_after = _retry_after(response)
            if retry_after is not None:
                return {"success": False, "event_id": None, "meeting_link": None,
                        "error": "Rate limit exceeded", "retry_after": retry_after}
            response.raise_for_status()
            data = response.json()

            event_id = data.get("id")
            if not event_id:
                return {"success": False, "event_id": None, "meeting_link": None,
                        "error": "No event ID returned from Google Calendar", "retry_after": None}

            entry_points = (data.get("conferenceData") or {}).get("entryPoints") or []
            meeting_link = entry_points[0].get("uri") if entry_points else None
            logger.info(
                "Google Calendar event created: %s", event_id,
                extra={"remote_event_id": event_id, "provider": self.name},
            )
            return {"success": True, "event_id": event_id, "meeting_link": meeting_link,
                    "error": None, "retry_after": None}
        except Exception as e:
            logger.error("Google Calendar create_event error: %s", str(e), extra={"provider": self.name})
            return {"success": False, "event_id": None, "meeting_link": None,
                    "error": str(e), "retry_after": None}

    async def update_event(self, event_id: str, fields: dict) -> dict:
        """Patch only the given fields of an event."""
        try:
            response = await self._request(
                "PATCH",
                f"{self._events_url}/{event_id}",
                params={"sendUpdates": "all"},
                json=self._event_body(fields),
            )
            if response.status_code in (404, 410):
                return {"success": False, "event_id": event_id, "error": "Event not found",
                        "not_found": True, "retry_after": None}
            retry_after = _retry_after(response)
            if retry_after is not None:
                return {"success": False, "event_id": event_id, "error": "Rate limit exceeded",
                        "not_found": False, "retry_after": retry_after}
            response.raise_for_status()
            data = response.json()
            return {"success": True, "event_id": data.get("id", event_id), "error": None,
                    "not_found": False, "retry_after": None}
        except Exception as e:
            logger.error(
                "Google Calendar update_event error: %s", str(e),
                extra={"remote_event_id": event_id, "provider": self.name},
            )
            return {"success": False, "event_id": event_id, "error": str(e),
                    "not_found": False, "retry_after": None}

    async def delete_event(self, event_id: str) -> dict:
        try:
            response = await self._request(
                "DELETE",
                f"{self._events_url}/{event_id}",
                params={"sendUpdates": "all"},
            )
            if response.status_code in (404, 410):
                return {"success": False, "error": "Event not found", "not_found": True}
            response.raise_for_status()
            logger.info(
                "Google Calendar event deleted: %s", event_id,
                extra={"remote_event_id": event_id, "provider": self.name},
            )
            return {"success": True, "error": None, "not_found": False}
        except Exception as e:
            logger.error(
                "Google Calendar delete_event error: %s", str(e),
                extra={"remote_event_id": event_id, "provider": self.name},
            )
            return {"success": False, "error": str(e), "not_found": False}

    async def list_events(self, start: datetime, end: datetime) -> dict:
        """List single (expanded) events between start and end, following pagination."""
        try:
            events: list[CalendarEvent] = []
            params = {
                "timeMin": start.isoformat(),
                "timeMax": end.isoformat(),
                "singleEvents": "true",
                "orderBy": "startTime",
                "maxResults": LIST_PAGE_SIZE,
            }
            while True:
                response = await self._request("GET", self._events_url, params=params)
                response.raise_for_status()
                data = response.json()
                for item in data.get("items", []):
                    parsed = self._parse_event(item)
                    if parsed is not None:
                        events.append(parsed)
                page_token = data.get("nextPageToken")
                if not page_token:
                    break
                params["pageToken"] = page_token

            logger.info("Retrieved %d Google Calendar events", len(events), extra={"provider": self.name})
            return {"success": True, "events": events, "error": None}
        except Exception as e:
            logger.error("Google Calendar list_events error: %s", str(e), extra={"provider": self.name})
            return {"success": False, "events": [], "error": str(e)}

    def _parse_time(self, value: dict) -> Optional[datetime]:
        """Parse a Google start/end object. All-day events start at local midnight."""
        if value.get("dateTime"):
            parsed = date_parser.isoparse(value["dateTime"])
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=self._tz)
            return parsed
        if value.get("date"):
            day = date_parser.isoparse(value["date"]).date()
            return datetime.combine(day, dt_time(0, 0), tzinfo=self._tz)
        return None

    def _parse_event(self, item: dict) -> Optional[CalendarEvent]:
        if item.get("status") == "cancelled":
            return None
        start = self._parse_time(item.get("start") or {})
        end = self._parse_time(item.get("end") or {})
        if start is None or end is None:
            return None
        private = (item.get("extendedProperties") or {}).get("private") or {}
        created = date_parser.isoparse(item["created"]) if item.get("created") else None
        return CalendarEvent(
            id=item["id"],
            summary=item.get("summary", ""),
            start=start,
            end=end,
            attendees=item.get("attendees") or [],
            created=created,
            slot_kind=private.get("slotKind"),
        )

    async def test_connection(self) -> bool:
        """Fetch the calendar resource; True when reachable with current credentials."""
        try:
            response = await self._request("GET", f"{GOOGLE_CALENDAR_API}/calendars/{self.calendar_id}")
            response.raise_for_status()
            logger.info("Google Calendar connection OK: %s", response.json().get("summary"))
            return True
        except Exception as e:
            logger.error("Google Calendar connection test failed: %s", str(e))
            return False
