"""Booking disputes repository - raw SQL with psycopg2.

At most one open or under-review dispute exists per booking (partial unique
index in the schema).
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from dari.domain.models import DISPUTE_ACTIVE_STATUSES, DISPUTE_COLUMNS, DISPUTE_OPEN, Dispute
from dari.infra.db import fetchone

_SELECT_COLUMNS = ", ".join(DISPUTE_COLUMNS)

_UPDATABLE = frozenset(
    {"status", "resolution", "refund_amount", "reviewed_by", "resolved_by", "resolved_at"}
)


def _from_row(row: tuple[Any, ...]) -> Dispute:
    values = dict(zip(DISPUTE_COLUMNS, row))
    values["id"] = str(values["id"])
    values["booking_id"] = str(values["booking_id"])
    return Dispute(**values)


def insert_dispute(
    cur: PgCursor,
    *,
    booking_id: str,
    reason_code: str,
    description: str,
    filed_by: str,
) -> Dispute:
    row = fetchone(
        cur,
        f"""
        INSERT INTO booking_disputes (booking_id, status, reason_code, description, filed_by)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING {_SELECT_COLUMNS}
        """,
        (booking_id, DISPUTE_OPEN, reason_code, description, filed_by),
    )
    return _from_row(row)


def get_active_dispute(cur: PgCursor, booking_id: str) -> Dispute | None:
    row = fetchone(
        cur,
        f"""
        SELECT {_SELECT_COLUMNS}
        FROM booking_disputes
        WHERE booking_id = %s AND status = ANY(%s)
        ORDER BY created_at DESC
        LIMIT 1
        """,
        (booking_id, list(DISPUTE_ACTIVE_STATUSES)),
    )
    return _from_row(row) if row else None


def update_dispute(
    cur: PgCursor,
    dispute_id: str,
    *,
    expected_status: str,
    changes: dict[str, Any],
) -> Dispute | None:
    """Conditional update guarded on the dispute's current status."""
    unknown = set(changes) - _UPDATABLE
    if unknown:
        raise ValueError(f"Cannot update dispute columns: {sorted(unknown)}")

    assignments = ", ".join(f"{column} = %s" for column in changes)
    row = fetchone(
        cur,
        f"""
        UPDATE booking_disputes
        SET {assignments}, updated_at = now()
        WHERE id = %s AND status = %s
        RETURNING {_SELECT_COLUMNS}
        """,
        [*changes.values(), dispute_id, expected_status],
    )
    return _from_row(row) if row else None
