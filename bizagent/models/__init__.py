"""
Database models - import all models here so Alembic can discover them.
"""
from bizagent.models.time_slot import TimeSlot

__all__ = [
    "TimeSlot",
]
