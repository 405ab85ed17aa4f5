"""
Tests for bizagent/services/booking.py - reserving and cancelling slots.
"""
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from bizagent.errors import ConflictError, NotFoundError, RemoteServiceError
from bizagent.schemas.calendar import (
    CalendarEvent,
    Requester,
    SLOT_KIND_AVAILABILITY,
    SLOT_KIND_BOOKING,
)
from bizagent.services.booking import BookingService, booking_description, booking_title
from bizagent.utils.timezone import slot_window

SEPT_FIRST = date(2025, 9, 1)
MONDAY = date(2025, 6, 9)


@pytest.fixture
def jana():
    return Requester(name="Jana", email="jana@x.sk")


def _placeholder(event_id, day, time_of_day) -> CalendarEvent:
    start, end = slot_window(day, time_of_day, "Europe/Bratislava")
    return CalendarEvent(id=event_id, start=start, end=end, slot_kind=SLOT_KIND_AVAILABILITY)


class TestBookingText:
    def test_title_with_company(self):
        requester = Requester(name="Jana", email="jana@x.sk", company="Acme")
        assert booking_title(requester) == "Stretnutie s Jana (Acme)"

    def test_title_without_company(self, jana):
        assert booking_title(jana) == "Stretnutie s Jana"

    def test_description_defaults_notes(self, jana):
        text = booking_description(jana)
        assert "Poznámky: Žiadne poznámky" in text
        assert "jana@x.sk" in text


class TestBookSlot:
    async def test_jana_books_open_slot(self, ctx, provider, jana, mock_redis):
        """Successful booking shows up as booked in the merged view."""
        slot = await ctx.store.create(SEPT_FIRST, "10:00")

        assert await ctx.booking.book_slot(slot.id, jana) is True

        views = await ctx.reconciliation.get_merged_slots()
        assert views[0].available is False
        assert views[0].booked_by == "Jana"

        event = provider.events[slot.remote_event_id]
        assert event.slot_kind == SLOT_KIND_BOOKING
        assert {a["email"] for a in event.attendees} == {"jana@x.sk", "office@biz-agent.sk"}
        assert slot.booked_email == "jana@x.sk"

    async def test_books_by_composite_key(self, ctx, jana, mock_redis):
        slot = await ctx.store.create(SEPT_FIRST, "10:00")

        await ctx.booking.book_slot("2025-09-01-10:00", jana)

        await ctx.store.reload(slot)
        assert slot.available is False

    async def test_missing_slot(self, ctx, jana, mock_redis):
        with pytest.raises(NotFoundError):
            await ctx.booking.book_slot("nope", jana)

    async def test_booked_slot_conflicts_without_mutation(self, ctx, jana, mock_redis):
        """No remote call and no store write when the slot is already taken."""
        slot = await ctx.store.create(SEPT_FIRST, "10:00", available=False, remote_event_id="evt_1")
        await ctx.store.update_fields(slot, booked_by="Peter")
        ctx.booking.provider = AsyncMock()

        with pytest.raises(ConflictError):
            await ctx.booking.book_slot(slot.id, jana)

        ctx.booking.provider.create_event.assert_not_called()
        ctx.booking.provider.update_event.assert_not_called()
        await ctx.store.reload(slot)
        assert slot.booked_by == "Peter"
        assert slot.remote_event_id == "evt_1"

    async def test_remote_failure_leaves_slot_available(self, ctx, jana, mock_redis):
        """No partial commit: a failed remote create keeps the slot open."""
        slot = await ctx.store.create(SEPT_FIRST, "10:00")
        ctx.booking.provider = AsyncMock()
        ctx.booking.provider.create_event = AsyncMock(return_value={
            "success": False, "event_id": None, "error": "Backend Error",
        })

        with pytest.raises(RemoteServiceError) as exc_info:
            await ctx.booking.book_slot(slot.id, jana)

        assert exc_info.value.provider_error == "Backend Error"
        assert exc_info.value.status_code == 503
        await ctx.store.reload(slot)
        assert slot.available is True
        assert slot.booked_by is None

    async def test_remote_exception_is_remote_service_error(self, ctx, jana, mock_redis):
        slot = await ctx.store.create(SEPT_FIRST, "10:00")
        ctx.booking.provider = AsyncMock()
        ctx.booking.provider.create_event = AsyncMock(side_effect=RuntimeError("timeout"))

        with pytest.raises(RemoteServiceError):
            await ctx.booking.book_slot(slot.id, jana)

    async def test_reuses_placeholder_event(self, ctx, provider, jana, mock_redis):
        """A slot linked to a placeholder updates that event instead of creating one."""
        provider.add_event(_placeholder("evt_ph", MONDAY, "10:00"))
        slot = await ctx.store.create(MONDAY, "10:00", remote_event_id="evt_ph")

        await ctx.booking.book_slot(slot.id, jana)

        assert slot.remote_event_id == "evt_ph"
        assert list(provider.events) == ["evt_ph"]
        assert provider.events["evt_ph"].slot_kind == SLOT_KIND_BOOKING
        assert provider.events["evt_ph"].summary == "Stretnutie s Jana"

    async def test_recreates_vanished_event(self, ctx, provider, jana, mock_redis):
        """If the linked event was deleted remotely a new one is created."""
        slot = await ctx.store.create(MONDAY, "10:00", remote_event_id="evt_deleted")

        await ctx.booking.book_slot(slot.id, jana)

        assert slot.available is False
        assert slot.remote_event_id != "evt_deleted"
        assert slot.remote_event_id in provider.events

    async def test_update_failure_raises(self, ctx, jana, mock_redis):
        slot = await ctx.store.create(MONDAY, "10:00", remote_event_id="evt_ph")
        ctx.booking.provider = AsyncMock()
        ctx.booking.provider.update_event = AsyncMock(return_value={
            "success": False, "error": "Rate limit exceeded", "not_found": False, "retry_after": 5.0,
        })

        with pytest.raises(RemoteServiceError):
            await ctx.booking.book_slot(slot.id, jana)

        ctx.booking.provider.create_event.assert_not_called()
        await ctx.store.reload(slot)
        assert slot.available is True
        assert slot.booked_by is None
        assert slot.remote_event_id == "evt_ph"

    async def test_lost_claim_makes_no_remote_write(self, ctx, provider, jana, mock_redis):
        """When a concurrent booking wins the claim, no event is created."""
        slot = await ctx.store.create(SEPT_FIRST, "10:00")

        with patch.object(ctx.store, "claim", AsyncMock(return_value=False)):
            with pytest.raises(ConflictError):
                await ctx.booking.book_slot(slot.id, jana)

        assert provider.events == {}

    async def test_lost_claim_leaves_placeholder_untouched(self, ctx, provider, mock_redis):
        """The shared placeholder never carries the losing requester."""
        await ctx.generation.generate_bulk(1)
        slot = (await ctx.store.list())[0]
        before = provider.events[slot.remote_event_id]
        peter = Requester(name="Peter", email="peter@x.sk")

        with patch.object(ctx.store, "claim", AsyncMock(return_value=False)):
            with pytest.raises(ConflictError):
                await ctx.booking.book_slot(slot.id, peter)

        after = provider.events[slot.remote_event_id]
        assert after.slot_kind == SLOT_KIND_AVAILABILITY
        assert after.summary == before.summary
        assert after.attendees == []

    async def test_winner_keeps_reused_placeholder(self, ctx, provider, jana, mock_redis):
        """A second booking of a reused placeholder conflicts and leaves the first booking's event."""
        await ctx.generation.generate_bulk(1)
        slot = (await ctx.store.list())[0]
        await ctx.booking.book_slot(slot.id, jana)

        with pytest.raises(ConflictError):
            await ctx.booking.book_slot(slot.id, Requester(name="Peter", email="peter@x.sk"))

        event = provider.events[slot.remote_event_id]
        assert event.summary == "Stretnutie s Jana"
        assert {a["email"] for a in event.attendees} == {"jana@x.sk", "office@biz-agent.sk"}

    async def test_lock_is_keyed_by_date_and_time(self, ctx, jana, mock_redis):
        """Booking by uuid and by composite key contend for the same lock."""
        slot = await ctx.store.create(SEPT_FIRST, "10:00")

        await ctx.booking.book_slot("2025-09-01-10:00", jana)

        name = mock_redis.lock.call_args.args[0]
        assert name == "bizagent:lock:slot:2025-09-01-10:00"
        assert mock_redis.lock.call_args.kwargs == {"timeout": 30, "blocking_timeout": 5.0}
        await ctx.store.reload(slot)
        assert slot.available is False

    async def test_held_lock_conflicts_without_mutation(self, ctx, provider, jana, mock_redis):
        slot = await ctx.store.create(SEPT_FIRST, "10:00")
        mock_redis.lock.return_value.acquire = AsyncMock(return_value=False)

        with pytest.raises(ConflictError):
            await ctx.booking.book_slot(slot.id, jana)

        assert provider.events == {}
        await ctx.store.reload(slot)
        assert slot.available is True

    async def test_without_organizer_email(self, ctx, provider, jana, mock_redis):
        ctx.booking.organizer_email = ""
        slot = await ctx.store.create(SEPT_FIRST, "10:00")

        await ctx.booking.book_slot(slot.id, jana)

        assert provider.events[slot.remote_event_id].attendees == [{"email": "jana@x.sk"}]

    async def test_proceeds_when_redis_down(self, ctx, jana):
        """Redis outage degrades to lock-free booking."""
        slot = await ctx.store.create(SEPT_FIRST, "10:00")
        with patch("bizagent.utils.redis_client.get_redis", AsyncMock(side_effect=ConnectionError("refused"))):
            assert await ctx.booking.book_slot(slot.id, jana) is True


class TestCancelBooking:
    async def _book(self, ctx, jana, day=SEPT_FIRST):
        slot = await ctx.store.create(day, "10:00")
        await ctx.booking.book_slot(slot.id, jana)
        return slot

    async def test_cancel_then_merged_view_available(self, ctx, provider, jana, mock_redis):
        slot = await self._book(ctx, jana)
        event_id = slot.remote_event_id

        assert await ctx.booking.cancel_booking(slot.id) is True

        views = await ctx.reconciliation.get_merged_slots()
        assert views[0].available is True
        assert views[0].booked_by is None
        assert event_id not in provider.events

    async def test_keep_policy_leaves_remote_event(self, ctx, provider, settings, clock, jana, mock_redis):
        slot = await self._book(ctx, jana)
        event_id = slot.remote_event_id
        service = BookingService(ctx.store, provider, settings=settings, clock=clock, cancellation_policy="keep")

        await service.cancel_booking(slot.id)

        assert event_id in provider.events
        assert slot.available is True
        assert slot.remote_event_id is None

    async def test_missing_slot(self, ctx, mock_redis):
        with pytest.raises(NotFoundError):
            await ctx.booking.cancel_booking("nope")

    async def test_available_slot_conflicts(self, ctx, mock_redis):
        slot = await ctx.store.create(SEPT_FIRST, "10:00")
        with pytest.raises(ConflictError):
            await ctx.booking.cancel_booking(slot.id)

    async def test_remote_not_found_counts_as_deleted(self, ctx, provider, jana, mock_redis):
        slot = await self._book(ctx, jana)
        provider.events.clear()

        await ctx.booking.cancel_booking(slot.id)

        assert slot.available is True

    async def test_remote_delete_failure_changes_nothing(self, ctx, jana, mock_redis):
        slot = await self._book(ctx, jana)
        event_id = slot.remote_event_id
        ctx.booking.provider = AsyncMock()
        ctx.booking.provider.delete_event = AsyncMock(return_value={
            "success": False, "error": "Backend Error", "not_found": False,
        })

        with pytest.raises(RemoteServiceError):
            await ctx.booking.cancel_booking(slot.id)

        await ctx.store.reload(slot)
        assert slot.available is False
        assert slot.remote_event_id == event_id

    def test_unknown_policy_rejected(self, ctx, provider, settings):
        with pytest.raises(ValueError):
            BookingService(ctx.store, provider, settings=settings, cancellation_policy="archive")
