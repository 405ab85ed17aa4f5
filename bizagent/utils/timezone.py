"""
Timezone utilities for slot windows.
Slots are stored as a local date + "HH:MM"; windows are resolved in the
calendar's configured timezone so they compare correctly with remote events.
"""
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Europe/Bratislava"
SLOT_DURATION = timedelta(hours=1)


def parse_time_of_day(value: str) -> time:
    """Parse HH:MM string to time object."""
    parts = value.split(":")
    return time(int(parts[0]), int(parts[1]))


def slot_window(slot_date: date, time_of_day: str, tz_name: str = DEFAULT_TIMEZONE) -> tuple[datetime, datetime]:
    """Return the aware [start, end) window of a one-hour slot."""
    start = datetime.combine(slot_date, parse_time_of_day(time_of_day), tzinfo=ZoneInfo(tz_name))
    return start, start + SLOT_DURATION


def local_now(tz_name: str = DEFAULT_TIMEZONE) -> datetime:
    return datetime.now(ZoneInfo(tz_name))


def next_monday(today: date) -> date:
    """The first Monday strictly after `today`."""
    return today + timedelta(days=7 - today.weekday())
