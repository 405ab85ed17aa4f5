"""Initial schema - time_slots table for the booking calendar.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "time_slots",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("time_of_day", sa.String(5), nullable=False),
        sa.Column("available", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("booked_by", sa.String(200)),
        sa.Column("booked_email", sa.String(255)),
        sa.Column("booked_at", sa.DateTime(timezone=True)),
        sa.Column("remote_event_id", sa.String(255), unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("date", "time_of_day", name="uq_time_slots_date_time"),
    )
    op.create_index("ix_time_slots_available", "time_slots", ["available"])


def downgrade() -> None:
    op.drop_index("ix_time_slots_available", table_name="time_slots")
    op.drop_table("time_slots")
