"""Payment milestones of a booking.

The payment gateway lives in another service. This module records what
that service reports (authorization, hold, captured deposit, completed
refund) and emits the instructions it acts on. Every recorder is
idempotent because payment callbacks are retried.
"""

from __future__ import annotations

from dari.domain.booking_states import (
    DEPOSIT_RECORDABLE_STATUSES,
    BookingStatus,
)
from dari.domain.errors import ConflictError, IllegalStateError
from dari.domain.lifecycle import (
    BOOKING_DEPOSIT_PAID,
    PAYMENT_AUTHORIZED,
    PAYMENT_CAPTURE_REQUESTED,
    PAYMENT_HELD,
    PAYMENT_STARTED,
    REFUND_COMPLETED,
    ROLE_GUEST,
    apply_transition,
    load_booking,
    require_party,
)
from dari.domain.models import (
    PAYMENT_AUTHORIZED as PAYMENT_STATUS_AUTHORIZED,
    PAYMENT_PAID,
    PAYMENT_REFUNDED,
    REFUND_COMPLETED as REFUND_STATUS_COMPLETED,
    REFUND_PENDING,
    Booking,
)
from dari.infra import db
from dari.infra.repositories import bookings_repository, outbox_repository
from dari.observability.correlation import get_correlation_id_or_none
from dari.observability.logging import get_logger
from dari.observability.redaction import safe_log_context

logger = get_logger(__name__)


def begin_payment(
    booking_id: str,
    guest_id: str,
    *,
    correlation_id: str | None = None,
) -> Booking:
    """Guest starts paying a confirmed booking (confirmed -> awaiting_payment).

    Calling it again while awaiting_payment returns the booking unchanged.
    """
    correlation_id = correlation_id or get_correlation_id_or_none()

    with db.txn() as cur:
        booking = load_booking(cur, booking_id)
        require_party(booking, guest_id, ROLE_GUEST)

        if booking.status == BookingStatus.AWAITING_PAYMENT:
            return booking
        if booking.status != BookingStatus.CONFIRMED:
            raise IllegalStateError(
                f"Payment can only start on a confirmed booking (status {booking.status})",
                current_status=booking.status,
                attempted=BookingStatus.AWAITING_PAYMENT.value,
            )

        booking = apply_transition(cur, booking, BookingStatus.AWAITING_PAYMENT)
        outbox_repository.emit_booking_event(
            cur,
            booking,
            PAYMENT_STARTED,
            correlation_id=correlation_id,
            deposit_amount=booking.deposit_amount,
        )

    return booking


def record_deposit(booking_id: str, *, correlation_id: str | None = None) -> Booking:
    """Record that the guest's deposit was paid.

    Legal from confirmed, awaiting_payment, payment_authorized and
    payment_held. Already deposit_paid is a no-op success, including when a
    concurrent call committed first, so a retried callback never produces a
    second capture instruction.

    Raises:
        NotFoundError: Unknown booking.
        IllegalStateError: Booking is in any other status.
        ConflictError: The booking moved elsewhere concurrently.
    """
    correlation_id = correlation_id or get_correlation_id_or_none()

    with db.txn() as cur:
        booking = load_booking(cur, booking_id)

        if booking.status == BookingStatus.DEPOSIT_PAID:
            logger.info(
                "deposit already recorded",
                extra={"extra_fields": safe_log_context(booking_id=booking_id)},
            )
            return booking

        if booking.status not in DEPOSIT_RECORDABLE_STATUSES:
            raise IllegalStateError(
                f"Cannot record a deposit while booking is {booking.status}",
                current_status=booking.status,
                attempted=BookingStatus.DEPOSIT_PAID.value,
            )

        try:
            booking = apply_transition(
                cur,
                booking,
                BookingStatus.DEPOSIT_PAID,
                {"payment_status": PAYMENT_PAID},
            )
        except ConflictError:
            current = load_booking(cur, booking_id)
            if current.status == BookingStatus.DEPOSIT_PAID:
                return current
            raise

        outbox_repository.emit_booking_event(
            cur,
            booking,
            PAYMENT_CAPTURE_REQUESTED,
            correlation_id=correlation_id,
            amount=booking.deposit_amount,
        )
        outbox_repository.emit_booking_event(
            cur,
            booking,
            BOOKING_DEPOSIT_PAID,
            correlation_id=correlation_id,
            deposit_amount=booking.deposit_amount,
        )

    return booking


def record_payment_authorization(
    booking_id: str,
    *,
    held: bool = False,
    correlation_id: str | None = None,
) -> Booking:
    """Record that the gateway authorized (held=False) or placed a hold on funds.

    confirmed/awaiting_payment -> payment_authorized
    payment_authorized -> payment_held
    payment_status becomes "authorized": the deposit is secured but not captured.
    Repeats of an already recorded milestone return the booking unchanged.
    """
    correlation_id = correlation_id or get_correlation_id_or_none()

    if held:
        target = BookingStatus.PAYMENT_HELD
        already_done = {BookingStatus.PAYMENT_HELD}
        event_type = PAYMENT_HELD
    else:
        target = BookingStatus.PAYMENT_AUTHORIZED
        already_done = {BookingStatus.PAYMENT_AUTHORIZED, BookingStatus.PAYMENT_HELD}
        event_type = PAYMENT_AUTHORIZED

    with db.txn() as cur:
        booking = load_booking(cur, booking_id)
        if booking.status in already_done:
            return booking

        try:
            booking = apply_transition(
                cur, booking, target, {"payment_status": PAYMENT_STATUS_AUTHORIZED}
            )
        except ConflictError:
            current = load_booking(cur, booking_id)
            if current.status in already_done:
                return current
            raise

        outbox_repository.emit_booking_event(
            cur, booking, event_type, correlation_id=correlation_id
        )

    return booking


def confirm_refund(booking_id: str, *, correlation_id: str | None = None) -> Booking:
    """Mark a pending refund as paid out by the gateway.

    Raises:
        IllegalStateError: The booking has no refund pending.
    """
    correlation_id = correlation_id or get_correlation_id_or_none()

    with db.txn() as cur:
        booking = load_booking(cur, booking_id)

        if booking.refund_status == REFUND_STATUS_COMPLETED:
            return booking
        if booking.refund_status != REFUND_PENDING:
            raise IllegalStateError(
                "Booking has no refund pending",
                current_status=booking.status,
                reason="no_refund_pending",
                refund_status=booking.refund_status,
            )

        updated = bookings_repository.compare_and_set(
            cur,
            booking.id,
            expected_status=booking.status,
            expected_version=booking.version,
            changes={
                "refund_status": REFUND_STATUS_COMPLETED,
                "payment_status": PAYMENT_REFUNDED,
            },
        )
        if updated is None:
            current = load_booking(cur, booking_id)
            if current.refund_status == REFUND_STATUS_COMPLETED:
                return current
            raise ConflictError(
                f"Booking {booking_id} was modified concurrently, re-read and retry",
                reason="concurrent_update",
                current_status=current.status,
            )

        outbox_repository.emit_booking_event(
            cur,
            updated,
            REFUND_COMPLETED,
            correlation_id=correlation_id,
            amount=updated.refund_amount,
        )

    return updated
