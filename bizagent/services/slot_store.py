"""
Slot store - async SQLAlchemy access to the time_slots table.

Every mutating call commits. SQLAlchemy failures are rolled back and
re-raised as StoreError; there is no silent fallback for store failures.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bizagent.errors import StoreError
from bizagent.models.time_slot import TimeSlot
from bizagent.schemas.calendar import SlotInput

logger = logging.getLogger(__name__)


def parse_slot_key(slot_id: str) -> Optional[tuple[date, str]]:
    """Parse a composite "YYYY-MM-DD-HH:MM" slot id into (date, time)."""
    if not slot_id or len(slot_id) != 16:
        return None
    date_part, _, time_part = slot_id.rpartition("-")
    try:
        slot_date = date.fromisoformat(date_part)
    except ValueError:
        return None
    if len(time_part) != 5 or time_part[2] != ":":
        return None
    return slot_date, time_part


class SlotStore:
    """Slot persistence bound to one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Slot store %s failed: %s", operation, str(e))
            raise StoreError(f"Slot store {operation} failed: {e}") from e

    async def list(self) -> list[TimeSlot]:
        """All slots ordered by date, then time of day."""
        async with self._guard("list"):
            result = await self.db.execute(
                select(TimeSlot).order_by(TimeSlot.slot_date, TimeSlot.time_of_day)
            )
            return list(result.scalars().all())

    async def get(self, slot_id: str) -> Optional[TimeSlot]:
        """Look up by id, falling back to the composite date-time key."""
        async with self._guard("get"):
            slot = await self.db.get(TimeSlot, slot_id)
        if slot is not None:
            return slot
        key = parse_slot_key(slot_id)
        if key is None:
            return None
        return await self.find_by_date_and_time(*key)

    async def find_by_date_and_time(self, slot_date: date, time_of_day: str) -> Optional[TimeSlot]:
        async with self._guard("find_by_date_and_time"):
            result = await self.db.execute(
                select(TimeSlot).where(
                    TimeSlot.slot_date == slot_date,
                    TimeSlot.time_of_day == time_of_day,
                )
            )
            return result.scalar_one_or_none()

    async def create(
        self,
        slot_date: date,
        time_of_day: str,
        available: bool = True,
        remote_event_id: Optional[str] = None,
        slot_id: Optional[str] = None,
    ) -> TimeSlot:
        slot = TimeSlot(
            slot_date=slot_date,
            time_of_day=time_of_day,
            available=available,
            remote_event_id=remote_event_id,
        )
        if slot_id:
            slot.id = slot_id
        async with self._guard("create"):
            self.db.add(slot)
            await self.db.commit()
        return slot

    async def reload(self, slot: TimeSlot) -> TimeSlot:
        """Re-read a loaded slot from the database."""
        async with self._guard("reload"):
            await self.db.refresh(slot)
        return slot

    async def update_fields(self, slot: TimeSlot, **fields) -> TimeSlot:
        """Set attributes on a loaded slot and commit."""
        for name, value in fields.items():
            setattr(slot, name, value)
        async with self._guard("update"):
            await self.db.commit()
        return slot

    async def find_for_input(self, data: SlotInput) -> Optional[TimeSlot]:
        """The row a bulk-save entry refers to: by id first, then by (date, time)."""
        if data.id:
            async with self._guard("find_for_input"):
                slot = await self.db.get(TimeSlot, data.id)
            if slot is not None:
                return slot
        return await self.find_by_date_and_time(data.date, data.time)

    async def upsert(self, data: SlotInput) -> TimeSlot:
        """
        Insert or update one slot. Matches by id first, then by (date, time),
        so a row stored under a different id is merged instead of duplicated.
        An entry without remote_event_id keeps the row's existing link.
        """
        slot = await self.find_for_input(data)

        fields = {
            "available": data.available,
            "booked_by": data.booked_by if not data.available else None,
            "booked_at": data.booked_at if not data.available else None,
        }
        if slot is None:
            slot = TimeSlot(
                slot_date=data.date,
                time_of_day=data.time,
                remote_event_id=data.remote_event_id,
                **fields,
            )
            if data.id:
                slot.id = data.id
            async with self._guard("upsert"):
                self.db.add(slot)
                await self.db.commit()
            return slot

        if data.remote_event_id:
            fields["remote_event_id"] = data.remote_event_id
        if data.available:
            fields["booked_email"] = None
        return await self.update_fields(slot, **fields)

    async def claim(
        self,
        slot: TimeSlot,
        booked_by: str,
        booked_at: datetime,
        remote_event_id: Optional[str],
        booked_email: Optional[str] = None,
    ) -> bool:
        """
        Reserve a slot only while it is still available.
        Returns False when another writer got there first (0 rows affected).
        """
        async with self._guard("claim"):
            result = await self.db.execute(
                update(TimeSlot)
                .where(TimeSlot.id == slot.id, TimeSlot.available == True)
                .values(
                    available=False,
                    booked_by=booked_by,
                    booked_email=booked_email,
                    booked_at=booked_at,
                    remote_event_id=remote_event_id,
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            await self.db.refresh(slot)
        return result.rowcount == 1

    async def release(self, slot: TimeSlot, remote_event_id: Optional[str] = None) -> bool:
        """
        Make a booked slot available again. False if it was not booked.
        `remote_event_id` keeps a link, e.g. the placeholder a failed booking had reused.
        """
        async with self._guard("release"):
            result = await self.db.execute(
                update(TimeSlot)
                .where(TimeSlot.id == slot.id, TimeSlot.available == False)
                .values(
                    available=True,
                    booked_by=None,
                    booked_email=None,
                    booked_at=None,
                    remote_event_id=remote_event_id,
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            await self.db.refresh(slot)
        return result.rowcount == 1

    async def linked_event_ids(self) -> list[str]:
        async with self._guard("linked_event_ids"):
            result = await self.db.execute(
                select(TimeSlot.remote_event_id).where(TimeSlot.remote_event_id.isnot(None))
            )
            return [row for row in result.scalars().all()]

    async def delete_all(self) -> int:
        async with self._guard("delete_all"):
            result = await self.db.execute(
                delete(TimeSlot).execution_options(synchronize_session=False)
            )
            await self.db.commit()
        self.db.expunge_all()
        return result.rowcount or 0
