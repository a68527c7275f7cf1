"""Booking requests and the host's accept/decline decision.

request_booking() runs in one transaction:
load property terms → validate stay → check overlap → insert → emit event.
The bookings_no_active_overlap exclusion constraint backs up the overlap
check when two guests race for the same dates.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

import psycopg2.errors

from dari.domain.booking_states import BookingStatus
from dari.domain.errors import (
    AuthorizationError,
    IllegalStateError,
    NotFoundError,
    ValidationError,
)
from dari.domain.lifecycle import (
    BOOKING_ACCEPTED,
    BOOKING_DECLINED,
    BOOKING_REQUESTED,
    apply_transition,
    load_booking,
)
from dari.domain.models import PAYMENT_PENDING, REFUND_NONE, Booking
from dari.domain.refunds import CancellationPolicy, round_amount
from dari.infra import db
from dari.infra.repositories import (
    bookings_repository,
    conversations_repository,
    outbox_repository,
    properties_repository,
)
from dari.infra.settings import get_booking_settings
from dari.infra.time import utc_now
from dari.observability.correlation import get_correlation_id_or_none
from dari.observability.logging import get_logger
from dari.observability.redaction import safe_log_context

logger = get_logger(__name__)

DECISION_ACCEPT = "accept"
DECISION_DECLINE = "decline"
DECISIONS = (DECISION_ACCEPT, DECISION_DECLINE)

MAX_MESSAGE_LENGTH = 1000


def _overlap_error(property_id: str, check_in: date, check_out: date) -> ValidationError:
    return ValidationError(
        f"Property {property_id} is already booked for some of the dates "
        f"{check_in.isoformat()} to {check_out.isoformat()}",
        reason="dates_unavailable",
    )


def _validate_stay(
    check_in: date,
    check_out: date,
    total_price: Decimal,
    guests_count: int,
    guest_message: str | None,
    today: date,
) -> None:
    if check_out <= check_in:
        raise ValidationError("Check-out must be after check-in", reason="invalid_dates")
    if check_in < today:
        raise ValidationError("Check-in date is in the past", reason="check_in_in_past")
    if total_price <= 0:
        raise ValidationError("Total price must be positive", reason="invalid_total_price")
    if guests_count < 1:
        raise ValidationError("At least one guest is required", reason="invalid_guests_count")
    if guest_message is not None and len(guest_message) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Message must be at most {MAX_MESSAGE_LENGTH} characters",
            reason="message_too_long",
        )


def compute_deposit(total_price: Decimal, rate: Decimal) -> Decimal:
    """Default deposit: rate × total, rounded half-up to whole units."""
    return round_amount(total_price * rate)


def request_booking(
    guest_id: str,
    property_id: str,
    check_in: date,
    check_out: date,
    total_price: Decimal | int | str,
    *,
    guests_count: int = 1,
    guest_message: str | None = None,
    deposit_amount: Decimal | int | str | None = None,
    now: datetime | None = None,
    correlation_id: str | None = None,
) -> Booking:
    """Create a pending booking request.

    Raises:
        ValidationError: Bad dates or amounts, own property, stay shorter
            than the property minimum, or dates already taken.
        NotFoundError: Unknown property.
    """
    now = now or utc_now()
    correlation_id = correlation_id or get_correlation_id_or_none()
    settings = get_booking_settings()
    total = Decimal(str(total_price))

    _validate_stay(check_in, check_out, total, guests_count, guest_message, now.date())

    if deposit_amount is None:
        deposit = compute_deposit(total, settings.deposit_rate)
    else:
        deposit = Decimal(str(deposit_amount))
        if deposit <= 0 or deposit > total:
            raise ValidationError(
                "Deposit must be positive and not exceed the total price",
                reason="invalid_deposit",
            )

    try:
        with db.txn() as cur:
            terms = properties_repository.get_property_terms(cur, property_id)
            if terms is None:
                raise NotFoundError(
                    f"Property {property_id} not found", reason="property_not_found"
                )

            if str(terms.host_id) == str(guest_id):
                raise ValidationError(
                    "You cannot book your own property", reason="own_property"
                )

            nights = (check_out - check_in).days
            if nights < terms.minimum_stay:
                raise ValidationError(
                    f"Minimum stay is {terms.minimum_stay} nights",
                    reason="minimum_stay",
                    minimum_stay=terms.minimum_stay,
                )

            conflicting_id = bookings_repository.find_overlapping_booking(
                cur,
                property_id=property_id,
                check_in=check_in,
                check_out=check_out,
            )
            if conflicting_id is not None:
                raise _overlap_error(property_id, check_in, check_out)

            policy = CancellationPolicy.parse(
                terms.cancellation_policy or settings.default_cancellation_policy
            )

            booking = bookings_repository.insert_booking(
                cur,
                Booking(
                    id=str(uuid.uuid4()),
                    guest_id=str(guest_id),
                    host_id=terms.host_id,
                    property_id=property_id,
                    check_in_date=check_in,
                    check_out_date=check_out,
                    total_price=total,
                    deposit_amount=deposit,
                    currency=terms.currency or settings.default_currency,
                    cancellation_policy=policy.value,
                    status=BookingStatus.PENDING.value,
                    guests_count=guests_count,
                    guest_message=guest_message,
                    payment_status=PAYMENT_PENDING,
                    refund_status=REFUND_NONE,
                ),
            )

            outbox_repository.emit_booking_event(
                cur,
                booking,
                BOOKING_REQUESTED,
                correlation_id=correlation_id,
                check_in_date=check_in,
                check_out_date=check_out,
                nights=nights,
                total_price=total,
                deposit_amount=deposit,
            )
    except psycopg2.errors.ExclusionViolation as exc:
        if db.is_exclusion_violation(exc):
            raise _overlap_error(property_id, check_in, check_out) from exc
        raise

    logger.info(
        "booking requested",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                booking_id=booking.id,
                property_id=property_id,
                nights=nights,
                cancellation_policy=booking.cancellation_policy,
            )
        },
    )
    return booking


def respond_to_request(
    booking_id: str,
    host_id: str,
    decision: str,
    message: str | None = None,
    *,
    now: datetime | None = None,
    correlation_id: str | None = None,
) -> Booking:
    """Record the host's decision on a pending request.

    Accept moves the booking to confirmed and opens (or re-points) the
    host/guest conversation for the property. Decline is terminal.

    Raises:
        ValidationError: decision is not accept/decline, or message too long.
        AuthorizationError: host_id does not own the booking's property.
        IllegalStateError: booking is no longer pending.
        ConflictError: another response won the race.
    """
    if decision not in DECISIONS:
        raise ValidationError(
            f"decision must be one of {DECISIONS}, got {decision!r}",
            reason="invalid_decision",
        )
    if message is not None and len(message) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Message must be at most {MAX_MESSAGE_LENGTH} characters",
            reason="message_too_long",
        )

    now = now or utc_now()
    correlation_id = correlation_id or get_correlation_id_or_none()

    with db.txn() as cur:
        booking = load_booking(cur, booking_id)

        terms = properties_repository.get_property_terms(cur, booking.property_id)
        owner_id = terms.host_id if terms is not None else booking.host_id
        if str(host_id) != str(owner_id):
            raise AuthorizationError(
                "Only the property owner can respond to this request",
                reason="not_property_owner",
            )

        if booking.status != BookingStatus.PENDING:
            raise IllegalStateError(
                f"Booking has already been answered (status {booking.status})",
                current_status=booking.status,
                attempted=decision,
                reason="not_pending",
            )

        target = BookingStatus.CONFIRMED if decision == DECISION_ACCEPT else BookingStatus.DECLINED
        booking = apply_transition(
            cur,
            booking,
            target,
            {"host_response": message, "responded_at": now},
        )

        if decision == DECISION_ACCEPT:
            conversation_id = conversations_repository.upsert_booking_conversation(
                cur,
                property_id=booking.property_id,
                host_id=booking.host_id,
                guest_id=booking.guest_id,
                booking_id=booking.id,
            )
            outbox_repository.emit_booking_event(
                cur,
                booking,
                BOOKING_ACCEPTED,
                correlation_id=correlation_id,
                conversation_id=conversation_id,
            )
        else:
            outbox_repository.emit_booking_event(
                cur, booking, BOOKING_DECLINED, correlation_id=correlation_id
            )

    return booking


def get_booking(booking_id: str) -> Booking:
    """Load a booking or raise NotFoundError."""
    with db.txn() as cur:
        return load_booking(cur, booking_id)
