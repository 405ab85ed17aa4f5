"""
Calendar administration API - slot inventory, sync and bulk operations.
"""
import logging

from fastapi import APIRouter, Depends, Query

from bizagent.api.deps import get_calendar_context, to_http_exception
from bizagent.errors import BizAgentError
from bizagent.schemas.calendar import GenerateRequest, SaveSlotsRequest
from bizagent.services.calendar_context import CalendarContext

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/calendar", tags=["calendar"])


@router.get("/settings")
async def get_slot_settings(ctx: CalendarContext = Depends(get_calendar_context)):
    """Every slot, merged with the remote calendar."""
    try:
        slots = await ctx.reconciliation.get_merged_slots()
    except BizAgentError as e:
        raise to_http_exception(e)
    return {"slots": [s.model_dump(mode="json") for s in slots]}


@router.post("/settings")
async def save_slot_settings(
    payload: SaveSlotsRequest,
    ctx: CalendarContext = Depends(get_calendar_context),
):
    try:
        result = await ctx.admin.save_slots(payload.slots)
    except BizAgentError as e:
        raise to_http_exception(e)
    return {"success": result.remote_errors == 0, **result.model_dump(mode="json")}


@router.post("/sync-google")
async def sync_google(ctx: CalendarContext = Depends(get_calendar_context)):
    """Rewrite slot availability from the remote calendar."""
    try:
        result = await ctx.reconciliation.sync_from_remote()
    except BizAgentError as e:
        raise to_http_exception(e)
    return {"success": result.error is None, **result.model_dump()}


@router.post("/check-capacity")
async def check_capacity(ctx: CalendarContext = Depends(get_calendar_context)):
    try:
        report = await ctx.generation.check_and_ensure_capacity()
    except BizAgentError as e:
        raise to_http_exception(e)
    return report.model_dump()


@router.post("/generate")
async def generate_slots(
    payload: GenerateRequest,
    ctx: CalendarContext = Depends(get_calendar_context),
):
    """Create `count` new slots with placeholder events."""
    try:
        result = await ctx.generation.generate_bulk(payload.count)
    except BizAgentError as e:
        raise to_http_exception(e)
    return result.model_dump()


@router.post("/cancel/{slot_id}")
async def cancel_booking(
    slot_id: str,
    ctx: CalendarContext = Depends(get_calendar_context),
):
    try:
        await ctx.booking.cancel_booking(slot_id)
    except BizAgentError as e:
        raise to_http_exception(e)
    return {"success": True, "slot_id": slot_id}


@router.post("/clear-all-slots")
async def clear_all_slots(
    delete_remote_events: bool = Query(False),
    ctx: CalendarContext = Depends(get_calendar_context),
):
    try:
        result = await ctx.admin.clear_all_slots(delete_remote_events=delete_remote_events)
    except BizAgentError as e:
        raise to_http_exception(e)
    return {"success": True, **result.model_dump()}


@router.delete("/events/{event_id}")
async def delete_event(
    event_id: str,
    ctx: CalendarContext = Depends(get_calendar_context),
):
    """Delete a remote event. The slot linking to it keeps its id until the next sync."""
    try:
        await ctx.admin.delete_event(event_id)
    except BizAgentError as e:
        raise to_http_exception(e)
    return {"success": True, "event_id": event_id}


@router.get("/events")
async def list_events(
    days: int = Query(28, ge=1, le=365),
    ctx: CalendarContext = Depends(get_calendar_context),
):
    try:
        events = await ctx.admin.list_remote_events(days)
    except BizAgentError as e:
        raise to_http_exception(e)
    return {"events": [e.model_dump(mode="json") for e in events], "total": len(events)}
