"""Shared plumbing for booking operations.

Loads bookings, checks that the caller is the right party, and applies a
status change as one conditional write validated against the status graph.
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from dari.domain.booking_states import BookingStatus, assert_transition
from dari.domain.errors import AuthorizationError, ConflictError, NotFoundError
from dari.domain.models import Booking
from dari.infra.repositories import bookings_repository
from dari.observability.logging import get_logger
from dari.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Outbox event types
BOOKING_REQUESTED = "BOOKING_REQUESTED"
BOOKING_ACCEPTED = "BOOKING_ACCEPTED"
BOOKING_DECLINED = "BOOKING_DECLINED"
PAYMENT_STARTED = "PAYMENT_STARTED"
PAYMENT_AUTHORIZED = "PAYMENT_AUTHORIZED"
PAYMENT_HELD = "PAYMENT_HELD"
PAYMENT_CAPTURE_REQUESTED = "PAYMENT_CAPTURE_REQUESTED"
BOOKING_DEPOSIT_PAID = "BOOKING_DEPOSIT_PAID"
BOOKING_CHECKED_IN = "BOOKING_CHECKED_IN"
BOOKING_CHECKED_OUT = "BOOKING_CHECKED_OUT"
BOOKING_CANCELLED = "BOOKING_CANCELLED"
REFUND_REQUESTED = "REFUND_REQUESTED"
REFUND_COMPLETED = "REFUND_COMPLETED"
DISPUTE_FILED = "DISPUTE_FILED"
DISPUTE_UNDER_REVIEW = "DISPUTE_UNDER_REVIEW"
DISPUTE_RESOLVED = "DISPUTE_RESOLVED"
PAYOUT_REQUESTED = "PAYOUT_REQUESTED"
BOOKING_SETTLED = "BOOKING_SETTLED"

ROLE_GUEST = "guest"
ROLE_HOST = "host"


def load_booking(cur: PgCursor, booking_id: str) -> Booking:
    booking = bookings_repository.get_booking(cur, booking_id)
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found", reason="booking_not_found")
    return booking


def require_party(booking: Booking, actor_id: str, role: str) -> None:
    """Raise AuthorizationError unless actor_id is the booking's guest/host."""
    expected = booking.guest_id if role == ROLE_GUEST else booking.host_id
    if str(actor_id) != str(expected):
        raise AuthorizationError(
            f"Only the booking {role} may perform this action",
            reason=f"not_booking_{role}",
        )


def apply_transition(
    cur: PgCursor,
    booking: Booking,
    target: BookingStatus,
    changes: dict[str, Any] | None = None,
) -> Booking:
    """Move booking to target with one conditional UPDATE.

    Raises:
        IllegalStateError: target is not reachable from booking.status.
        ConflictError: the row changed since booking was read.
    """
    assert_transition(booking.status, target)

    updates = dict(changes or {})
    updates["status"] = target.value

    updated = bookings_repository.compare_and_set(
        cur,
        booking.id,
        expected_status=booking.status,
        expected_version=booking.version,
        changes=updates,
    )
    if updated is None:
        current = bookings_repository.get_booking(cur, booking.id)
        logger.warning(
            "booking transition lost race",
            extra={
                "extra_fields": safe_log_context(
                    booking_id=booking.id,
                    expected_status=booking.status,
                    expected_version=booking.version,
                    current_status=current.status if current else None,
                    attempted=target.value,
                )
            },
        )
        raise ConflictError(
            f"Booking {booking.id} was modified concurrently, re-read and retry",
            reason="concurrent_update",
            current_status=current.status if current else None,
        )

    logger.info(
        "booking transitioned",
        extra={
            "extra_fields": safe_log_context(
                booking_id=booking.id,
                property_id=booking.property_id,
                from_status=booking.status,
                to_status=updated.status,
                version=updated.version,
            )
        },
    )
    return updated
