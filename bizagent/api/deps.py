"""
Shared route dependencies and error mapping for the calendar API.
"""
from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from bizagent.database import get_db
from bizagent.errors import BizAgentError
from bizagent.services.calendar_context import CalendarContext, build_calendar_context


async def get_calendar_context(db: AsyncSession = Depends(get_db)) -> CalendarContext:
    """FastAPI dependency: calendar services bound to the request's session."""
    return build_calendar_context(db)


def to_http_exception(error: BizAgentError) -> HTTPException:
    detail = {"code": error.code, "message": error.message, "retryable": error.retryable}
    return HTTPException(status_code=error.status_code, detail=detail)
