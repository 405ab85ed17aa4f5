"""
Public booking calendar API - no auth, used by the website booking widget.

- GET  /api/public/calendar/slots               - upcoming bookable slots
- GET  /api/public/calendar/availability/{date} - all slots of one day
- POST /api/public/calendar/book                - reserve a slot
"""
import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException

from bizagent.api.deps import get_calendar_context, to_http_exception
from bizagent.errors import BizAgentError
from bizagent.schemas.calendar import BookingRequest, Requester
from bizagent.services.calendar_context import CalendarContext
from bizagent.utils.timezone import slot_window

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/public/calendar", tags=["public-calendar"])


@router.get("/slots")
async def get_available_slots(ctx: CalendarContext = Depends(get_calendar_context)):
    """Available slots that have not started yet, ordered by date and time."""
    try:
        slots = await ctx.reconciliation.get_merged_slots()
    except BizAgentError as e:
        raise to_http_exception(e)

    now = ctx.reconciliation.clock()
    tz_name = ctx.reconciliation.tz_name
    upcoming = [
        s for s in slots
        if s.available and slot_window(s.date, s.time, tz_name)[0] > now
    ]
    return {"slots": [s.model_dump(mode="json") for s in upcoming], "total": len(upcoming)}


@router.get("/availability/{date_str}")
async def get_day_availability(
    date_str: str,
    ctx: CalendarContext = Depends(get_calendar_context),
):
    """All slots of one day with their availability."""
    try:
        day = date.fromisoformat(date_str)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")

    try:
        slots = await ctx.reconciliation.get_merged_slots()
    except BizAgentError as e:
        raise to_http_exception(e)

    day_slots = [s for s in slots if s.date == day]
    return {
        "date": day.isoformat(),
        "slots": [s.model_dump(mode="json") for s in day_slots],
        "available": sum(1 for s in day_slots if s.available),
    }


@router.post("/book")
async def book_slot(
    payload: BookingRequest,
    ctx: CalendarContext = Depends(get_calendar_context),
):
    """Reserve a slot. 404 unknown slot, 409 already booked, 503 calendar unreachable."""
    requester = Requester(**payload.model_dump(exclude={"slot_id"}))
    try:
        await ctx.booking.book_slot(payload.slot_id, requester)
    except BizAgentError as e:
        logger.warning("Booking failed for slot %s: %s", payload.slot_id, e.message, extra={"error_code": e.code})
        raise to_http_exception(e)

    return {"success": True, "slot_id": payload.slot_id, "message": "Termín bol úspešne rezervovaný"}
