"""Booking lifecycle schema (SQL-only).

Creates booking_status, bookings, booking_disputes, outbox_events and the
local mirrors of users, platform_admins, properties and conversations.

Revision ID: 001_booking_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


# revision identifiers, used by Alembic.
revision = "001_booking_schema"
down_revision = None
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "001_booking_schema.sql"


def upgrade() -> None:
    # Raw driver execution so the DO $$ ... $$ block runs as written.
    conn = op.get_bind()
    conn.exec_driver_sql(_SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    raise NotImplementedError("Downgrade not supported")
