"""Cancel booking domain logic - transactional cancellation with refund calculation.

Orchestrates cancellation inside a single DB transaction:
load → authorize → validate status → calculate refund → conditional update → emit events.
The refund uses the policy snapshotted on the booking at request time.
"""

from __future__ import annotations

from datetime import datetime

from dari.domain.booking_states import CANCELLABLE_STATUSES, BookingStatus
from dari.domain.errors import IllegalStateError, ValidationError
from dari.domain.lifecycle import (
    BOOKING_CANCELLED,
    REFUND_REQUESTED,
    apply_transition,
    load_booking,
    require_party,
)
from dari.domain.models import REFUND_NONE, REFUND_PENDING, Booking
from dari.domain.refunds import CANCELLATION_ACTORS, RefundCalculation, calculate_refund
from dari.infra import db
from dari.infra.repositories import outbox_repository
from dari.infra.time import utc_now
from dari.observability.correlation import get_correlation_id_or_none
from dari.observability.logging import get_logger
from dari.observability.redaction import safe_log_context

logger = get_logger(__name__)

_CANCELLED_STATUS = {
    "guest": BookingStatus.CANCELLED_BY_GUEST,
    "host": BookingStatus.CANCELLED_BY_HOST,
}


def _validate_actor_role(actor_role: str) -> None:
    if actor_role not in CANCELLATION_ACTORS:
        raise ValidationError(
            f"actor_role must be one of {CANCELLATION_ACTORS}, got {actor_role!r}",
            reason="invalid_actor_role",
        )


def _refund_for(booking: Booking, cancelled_by: str, now: datetime) -> RefundCalculation:
    return calculate_refund(
        booking.cancellation_policy,
        booking.deposit_collected,
        booking.check_in_date,
        cancelled_by,
        now,
    )


def quote_cancellation_refund(
    booking_id: str,
    cancelled_by: str,
    *,
    now: datetime | None = None,
) -> RefundCalculation:
    """Preview the refund a cancellation would produce right now.

    Raises:
        ValidationError: cancelled_by is not guest/host.
        NotFoundError: Unknown booking.
    """
    _validate_actor_role(cancelled_by)
    now = now or utc_now()

    with db.txn() as cur:
        booking = load_booking(cur, booking_id)

    return _refund_for(booking, cancelled_by, now)


def cancel_booking(
    booking_id: str,
    actor_role: str,
    actor_id: str,
    *,
    now: datetime | None = None,
    correlation_id: str | None = None,
) -> Booking:
    """Cancel a booking on behalf of its guest or host.

    This function:
    1. Loads the booking and checks actor_id is its guest/host
    2. Rejects statuses outside the cancellable set
    3. Calculates the refund from the snapshotted policy
    4. Writes refund fields and cancelled_by_<role> in one conditional update
    5. Emits BOOKING_CANCELLED, plus REFUND_REQUESTED when money is owed.
       funds="authorized" tells the gateway to release an uncaptured hold
       rather than refund a capture.

    Raises:
        ValidationError: actor_role is not guest/host.
        NotFoundError: Unknown booking.
        AuthorizationError: actor_id is not the booking's guest/host.
        IllegalStateError: Booking is past the point of cancellation
            (checked in or later, or already terminal).
        ConflictError: Booking changed concurrently.
    """
    _validate_actor_role(actor_role)
    now = now or utc_now()
    correlation_id = correlation_id or get_correlation_id_or_none()

    with db.txn() as cur:
        booking = load_booking(cur, booking_id)
        require_party(booking, actor_id, actor_role)

        if booking.status not in CANCELLABLE_STATUSES:
            raise IllegalStateError(
                f"Booking cannot be cancelled while {booking.status}",
                current_status=booking.status,
                attempted=_CANCELLED_STATUS[actor_role].value,
                reason="not_cancellable",
            )

        refund = _refund_for(booking, actor_role, now)
        funds = booking.payment_status

        booking = apply_transition(
            cur,
            booking,
            _CANCELLED_STATUS[actor_role],
            {
                "refund_amount": refund.refund_amount,
                "refund_reason": refund.reason,
                "refund_status": REFUND_PENDING if refund.refund_amount > 0 else REFUND_NONE,
            },
        )

        outbox_repository.emit_booking_event(
            cur,
            booking,
            BOOKING_CANCELLED,
            correlation_id=correlation_id,
            cancelled_by=actor_role,
            refund_amount=refund.refund_amount,
            refund_percentage=refund.refund_percentage,
        )
        if refund.refund_amount > 0:
            outbox_repository.emit_booking_event(
                cur,
                booking,
                REFUND_REQUESTED,
                correlation_id=correlation_id,
                amount=refund.refund_amount,
                source="cancellation",
                funds=funds,
            )

    logger.info(
        "booking cancelled",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                booking_id=booking_id,
                cancelled_by=actor_role,
                refund_percentage=refund.refund_percentage,
                refund_amount=refund.refund_amount,
                days_until_checkin=refund.days_until_checkin,
            )
        },
    )
    return booking
