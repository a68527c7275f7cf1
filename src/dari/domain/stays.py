"""Check-in and check-out, both performed by the host."""

from __future__ import annotations

from datetime import datetime

from dari.domain.booking_states import CHECK_IN_STATUSES, BookingStatus
from dari.domain.errors import IllegalStateError
from dari.domain.lifecycle import (
    BOOKING_CHECKED_IN,
    BOOKING_CHECKED_OUT,
    PAYMENT_CAPTURE_REQUESTED,
    ROLE_HOST,
    apply_transition,
    load_booking,
    require_party,
)
from dari.domain.models import PAYMENT_AUTHORIZED, PAYMENT_PAID, Booking
from dari.domain.settlement import compute_settlement_due_at
from dari.infra import db
from dari.infra.repositories import outbox_repository
from dari.infra.settings import get_booking_settings
from dari.infra.time import utc_now
from dari.observability.correlation import get_correlation_id_or_none


def check_in(
    booking_id: str,
    host_id: str,
    *,
    now: datetime | None = None,
    correlation_id: str | None = None,
) -> Booking:
    """Host confirms the guest arrived.

    An authorized deposit is captured on arrival: payment_status becomes
    "paid" and PAYMENT_CAPTURE_REQUESTED is emitted.

    Raises:
        AuthorizationError: host_id is not the booking's host.
        IllegalStateError: deposit not secured (status not deposit_paid,
            payment_authorized or payment_held).
    """
    now = now or utc_now()
    correlation_id = correlation_id or get_correlation_id_or_none()

    with db.txn() as cur:
        booking = load_booking(cur, booking_id)
        require_party(booking, host_id, ROLE_HOST)

        if booking.status not in CHECK_IN_STATUSES:
            raise IllegalStateError(
                f"Cannot check in a booking that is {booking.status}",
                current_status=booking.status,
                attempted=BookingStatus.CHECKED_IN.value,
            )

        changes = {"actual_check_in": now}
        capture = booking.payment_status == PAYMENT_AUTHORIZED
        if capture:
            changes["payment_status"] = PAYMENT_PAID

        booking = apply_transition(cur, booking, BookingStatus.CHECKED_IN, changes)
        if capture:
            outbox_repository.emit_booking_event(
                cur,
                booking,
                PAYMENT_CAPTURE_REQUESTED,
                correlation_id=correlation_id,
                amount=booking.deposit_amount,
            )
        outbox_repository.emit_booking_event(
            cur, booking, BOOKING_CHECKED_IN, correlation_id=correlation_id, at=now
        )

    return booking


def check_out(
    booking_id: str,
    host_id: str,
    *,
    now: datetime | None = None,
    correlation_id: str | None = None,
) -> Booking:
    """Host confirms the guest left; starts the settlement clock.

    checked_in -> checked_out -> dispute_window in one transaction, with
    settlement_due_at = now + dispute window. A zero-hour window lands in
    settlement_pending instead, where no dispute can be filed.

    Raises:
        AuthorizationError: host_id is not the booking's host.
        IllegalStateError: booking is not checked_in.
    """
    now = now or utc_now()
    correlation_id = correlation_id or get_correlation_id_or_none()
    settings = get_booking_settings()

    with db.txn() as cur:
        booking = load_booking(cur, booking_id)
        require_party(booking, host_id, ROLE_HOST)

        if booking.status != BookingStatus.CHECKED_IN:
            raise IllegalStateError(
                f"Cannot check out a booking that is {booking.status}",
                current_status=booking.status,
                attempted=BookingStatus.CHECKED_OUT.value,
            )

        booking = apply_transition(
            cur, booking, BookingStatus.CHECKED_OUT, {"actual_check_out": now}
        )

        due_at = compute_settlement_due_at(now, settings.dispute_window)
        hold_status = (
            BookingStatus.DISPUTE_WINDOW
            if settings.dispute_window_hours > 0
            else BookingStatus.SETTLEMENT_PENDING
        )
        booking = apply_transition(
            cur, booking, hold_status, {"settlement_due_at": due_at}
        )

        outbox_repository.emit_booking_event(
            cur,
            booking,
            BOOKING_CHECKED_OUT,
            correlation_id=correlation_id,
            at=now,
            settlement_due_at=due_at,
        )

    return booking
