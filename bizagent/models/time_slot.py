"""
TimeSlot model - one bookable one-hour consultation window.
Linked to the external calendar through remote_event_id.
"""
import uuid
from datetime import datetime, timezone, date
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, Date, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from bizagent.database import Base

# Weekday labels shown on the public booking page (Monday first, date.weekday() order)
DAY_NAMES = ["Pondelok", "Utorok", "Streda", "Štvrtok", "Piatok", "Sobota", "Nedeľa"]


def day_name_for(slot_date: date) -> str:
    return DAY_NAMES[slot_date.weekday()]


class TimeSlot(Base):
    __tablename__ = "time_slots"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # Window
    slot_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    time_of_day: Mapped[str] = mapped_column(String(5), nullable=False)  # "HH:MM"

    # Availability
    available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    booked_by: Mapped[Optional[str]] = mapped_column(String(200))
    booked_email: Mapped[Optional[str]] = mapped_column(String(255))
    booked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # External calendar link
    remote_event_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint("date", "time_of_day", name="uq_time_slots_date_time"),
        Index("ix_time_slots_available", "available"),
    )

    @property
    def day_name(self) -> str:
        return day_name_for(self.slot_date)

    @property
    def key(self) -> str:
        """Composite "YYYY-MM-DD-HH:MM" id, accepted wherever a slot id is."""
        return f"{self.slot_date.isoformat()}-{self.time_of_day}"

    def __repr__(self) -> str:
        return f"<TimeSlot {self.slot_date} {self.time_of_day} available={self.available}>"
