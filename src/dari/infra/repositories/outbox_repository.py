"""Outbox repository - domain events for the notification and payment services.

Events are written in the same transaction as the booking change they
describe. Payloads carry ids, statuses and amounts only (no PII).
"""

import json
from decimal import Decimal
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from dari.domain.models import Booking, format_amount

AGGREGATE_BOOKING = "booking"


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return format_amount(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def emit_event(
    cur: PgCursor,
    *,
    property_id: str,
    event_type: str,
    aggregate_type: str,
    aggregate_id: str,
    payload: dict | None = None,
    correlation_id: str | None = None,
) -> int:
    """Emit an event to the outbox.

    Returns:
        The generated event ID.
    """
    payload_json = json.dumps(payload, default=_json_default) if payload else None

    cur.execute(
        """
        INSERT INTO outbox_events (
            property_id, event_type, aggregate_type,
            aggregate_id, payload, correlation_id
        )
        VALUES (%s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            property_id,
            event_type,
            aggregate_type,
            aggregate_id,
            payload_json,
            correlation_id,
        ),
    )
    return cur.fetchone()[0]


def emit_booking_event(
    cur: PgCursor,
    booking: Booking,
    event_type: str,
    *,
    correlation_id: str | None = None,
    **payload: Any,
) -> int:
    """Emit an event about a booking with its ids and status in the payload."""
    body = {
        "booking_id": booking.id,
        "guest_id": booking.guest_id,
        "host_id": booking.host_id,
        "status": booking.status,
        "currency": booking.currency,
    }
    body.update(payload)
    return emit_event(
        cur,
        property_id=booking.property_id,
        event_type=event_type,
        aggregate_type=AGGREGATE_BOOKING,
        aggregate_id=booking.id,
        payload=body,
        correlation_id=correlation_id,
    )
