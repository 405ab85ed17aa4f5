"""
Calendar context - builds the calendar services for one database session.

Routes, the maintenance worker and scripts each build their own context from
an AsyncSession; nothing here is a module-level service instance. Only the
provider is cached per process so the Google access token and the in-memory
event map survive between requests.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from bizagent.config import Settings, get_settings
from bizagent.integrations.calendar_base import CalendarProvider
from bizagent.services.booking import BookingService
from bizagent.services.calendar_admin import CalendarAdminService
from bizagent.services.reconciliation import SlotReconciliationService
from bizagent.services.slot_generation import SlotGenerationService
from bizagent.services.slot_store import SlotStore
from bizagent.utils.throttle import Throttle, build_throttle

logger = logging.getLogger(__name__)


@dataclass
class CalendarContext:
    store: SlotStore
    provider: CalendarProvider
    reconciliation: SlotReconciliationService
    generation: SlotGenerationService
    booking: BookingService
    admin: CalendarAdminService


def create_calendar_provider(settings: Settings) -> CalendarProvider:
    """Google Calendar when OAuth credentials are set, in-memory otherwise."""
    if settings.google_calendar_configured:
        from bizagent.integrations.google_calendar import GoogleCalendarProvider
        return GoogleCalendarProvider(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            refresh_token=settings.google_refresh_token,
            calendar_id=settings.google_calendar_id,
            timezone_name=settings.calendar_timezone,
        )

    from bizagent.integrations.in_memory_calendar import InMemoryCalendarProvider
    logger.warning(
        "Google Calendar credentials not set - using in-memory calendar. "
        "Set GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET and GOOGLE_REFRESH_TOKEN for production."
    )
    return InMemoryCalendarProvider(failure_rate=settings.calendar_mock_failure_rate)


@lru_cache()
def get_calendar_provider() -> CalendarProvider:
    return create_calendar_provider(get_settings())


def build_calendar_context(
    db: AsyncSession,
    provider: Optional[CalendarProvider] = None,
    settings: Optional[Settings] = None,
    throttle: Optional[Throttle] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> CalendarContext:
    settings = settings or get_settings()
    provider = provider or get_calendar_provider()
    throttle = throttle or build_throttle(
        settings.calendar_throttle_policy,
        settings.calendar_rate_limit_seconds,
        settings.calendar_burst,
    )

    store = SlotStore(db)
    reconciliation = SlotReconciliationService(store, provider, settings=settings, clock=clock)
    return CalendarContext(
        store=store,
        provider=provider,
        reconciliation=reconciliation,
        generation=SlotGenerationService(
            store, provider, reconciliation, throttle=throttle, settings=settings, clock=clock,
        ),
        booking=BookingService(store, provider, settings=settings, clock=clock),
        admin=CalendarAdminService(store, provider, settings=settings, throttle=throttle, clock=clock),
    )
