"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from bizagent.api.health import router as health_router
from bizagent.api.public_calendar import router as public_calendar_router
from bizagent.api.calendar import router as calendar_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(public_calendar_router)
api_router.include_router(calendar_router)
