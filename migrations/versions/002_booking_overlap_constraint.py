"""DB-level exclusion constraint against overlapping active bookings.

The first layer is the application check in request_booking(); this one
holds even when two requests race past it.

Revision ID: 002_booking_overlap_constraint
Revises: 001_booking_schema
Create Date: 2026-10-19
"""
from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "002_booking_overlap_constraint"
down_revision = "001_booking_schema"
branch_labels = None
depends_on = None

_SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "002_booking_overlap_constraint.sql"


def upgrade() -> None:
    op.execute(_SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    op.execute("ALTER TABLE bookings DROP CONSTRAINT IF EXISTS bookings_no_active_overlap")
    # btree_gist is kept: other indexes may depend on it.
