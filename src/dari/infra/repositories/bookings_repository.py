"""Bookings repository - raw SQL with psycopg2 (no ORM).

Every status change goes through compare_and_set(): a single UPDATE guarded
by the status and version the caller read. Zero rows updated means another
writer got there first.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from dari.domain.booking_states import INACTIVE_STATUSES, SETTLEABLE_STATUSES
from dari.domain.models import BOOKING_COLUMNS, UPDATABLE_COLUMNS, Booking
from dari.infra.db import fetchall, fetchone

_SELECT_COLUMNS = ", ".join(BOOKING_COLUMNS)


def get_booking(cur: PgCursor, booking_id: str) -> Booking | None:
    row = fetchone(
        cur,
        f"SELECT {_SELECT_COLUMNS} FROM bookings WHERE id = %s",
        (booking_id,),
    )
    return Booking.from_row(row) if row else None


def insert_booking(cur: PgCursor, booking: Booking) -> Booking:
    """Insert a new booking and return it with server-side timestamps.

    Raises:
        psycopg2.errors.ExclusionViolation: If the overlap constraint rejects it.
    """
    columns = [c for c in BOOKING_COLUMNS if c not in ("created_at", "updated_at")]
    placeholders = ", ".join(["%s"] * len(columns))
    row = fetchone(
        cur,
        f"""
        INSERT INTO bookings ({", ".join(columns)})
        VALUES ({placeholders})
        RETURNING {_SELECT_COLUMNS}
        """,
        [getattr(booking, c) for c in columns],
    )
    return Booking.from_row(row)


def find_overlapping_booking(
    cur: PgCursor,
    *,
    property_id: str,
    check_in: date,
    check_out: date,
    exclude_booking_id: str | None = None,
) -> str | None:
    """Return the id of an active booking overlapping [check_in, check_out).

    Overlap formula: new.check_in < existing.check_out AND new.check_out > existing.check_in.
    Touching stays (checkout day == next check-in day) do not overlap.
    """
    conditions = [
        "property_id = %s",
        "NOT (status = ANY(%s::booking_status[]))",
        "check_in_date < %s",
        "check_out_date > %s",
    ]
    params: list[Any] = [
        property_id,
        sorted(s.value for s in INACTIVE_STATUSES),
        check_out,
        check_in,
    ]
    if exclude_booking_id is not None:
        conditions.append("id != %s")
        params.append(exclude_booking_id)

    row = fetchone(
        cur,
        f"""
        SELECT id FROM bookings
        WHERE {" AND ".join(conditions)}
        ORDER BY check_in_date
        LIMIT 1
        """,
        params,
    )
    return str(row[0]) if row else None


def compare_and_set(
    cur: PgCursor,
    booking_id: str,
    *,
    expected_status: str,
    expected_version: int,
    changes: dict[str, Any],
) -> Booking | None:
    """Apply changes only if the booking is still at (expected_status, expected_version).

    Bumps version and updated_at on success.

    Returns:
        The updated booking, or None if the guard did not match.

    Raises:
        ValueError: If changes touch a column that may not be updated.
    """
    unknown = set(changes) - UPDATABLE_COLUMNS
    if unknown:
        raise ValueError(f"Cannot update booking columns: {sorted(unknown)}")
    if not changes:
        raise ValueError("compare_and_set requires at least one change")

    assignments = [f"{column} = %s" for column in changes]
    assignments += ["version = version + 1", "updated_at = now()"]
    params: list[Any] = list(changes.values())
    params += [booking_id, expected_status, expected_version]

    row = fetchone(
        cur,
        f"""
        UPDATE bookings
        SET {", ".join(assignments)}
        WHERE id = %s AND status = %s AND version = %s
        RETURNING {_SELECT_COLUMNS}
        """,
        params,
    )
    return Booking.from_row(row) if row else None


def list_due_for_settlement(cur: PgCursor, *, now: datetime, limit: int) -> list[str]:
    """Ids of bookings whose hold period has elapsed, oldest first.

    Only SETTLEABLE_STATUSES are selected, so disputed bookings never appear.
    """
    rows = fetchall(
        cur,
        """
        SELECT id FROM bookings
        WHERE status = ANY(%s::booking_status[])
          AND settlement_due_at IS NOT NULL
          AND settlement_due_at <= %s
        ORDER BY settlement_due_at
        LIMIT %s
        """,
        (sorted(s.value for s in SETTLEABLE_STATUSES), now, limit),
    )
    return [str(row[0]) for row in rows]
