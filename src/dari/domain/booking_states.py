"""Booking status graph.

The one table every operation consults before writing a status. An edge
missing here is an illegal transition, whatever code path asks for it.

Happy path:
    pending -> confirmed -> awaiting_payment -> deposit_paid -> checked_in
        -> checked_out -> dispute_window -> settled

Branches:
    pending -> declined
    {pending .. payment_held} -> cancelled_by_guest / cancelled_by_host
    checked_out / dispute_window -> disputed -> refunded / settled
    checked_out -> settlement_pending -> settled   (dispute window disabled)
"""

from __future__ import annotations

from enum import Enum

from dari.domain.errors import IllegalStateError


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    AWAITING_PAYMENT = "awaiting_payment"
    PAYMENT_AUTHORIZED = "payment_authorized"
    PAYMENT_HELD = "payment_held"
    DEPOSIT_PAID = "deposit_paid"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    DISPUTE_WINDOW = "dispute_window"
    SETTLEMENT_PENDING = "settlement_pending"
    DISPUTED = "disputed"
    SETTLED = "settled"
    REFUNDED = "refunded"
    CANCELLED_BY_GUEST = "cancelled_by_guest"
    CANCELLED_BY_HOST = "cancelled_by_host"


S = BookingStatus

_CANCELLED = {S.CANCELLED_BY_GUEST, S.CANCELLED_BY_HOST}

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.DECLINED, *_CANCELLED}),
    S.CONFIRMED: frozenset({S.AWAITING_PAYMENT, S.PAYMENT_AUTHORIZED, S.DEPOSIT_PAID, *_CANCELLED}),
    S.AWAITING_PAYMENT: frozenset({S.PAYMENT_AUTHORIZED, S.DEPOSIT_PAID, *_CANCELLED}),
    S.PAYMENT_AUTHORIZED: frozenset({S.PAYMENT_HELD, S.DEPOSIT_PAID, S.CHECKED_IN, *_CANCELLED}),
    S.PAYMENT_HELD: frozenset({S.DEPOSIT_PAID, S.CHECKED_IN, *_CANCELLED}),
    S.DEPOSIT_PAID: frozenset({S.CHECKED_IN, *_CANCELLED}),
    S.CHECKED_IN: frozenset({S.CHECKED_OUT}),
    S.CHECKED_OUT: frozenset({S.DISPUTE_WINDOW, S.SETTLEMENT_PENDING, S.DISPUTED}),
    S.DISPUTE_WINDOW: frozenset({S.DISPUTED, S.SETTLED}),
    S.SETTLEMENT_PENDING: frozenset({S.SETTLED}),
    S.DISPUTED: frozenset({S.REFUNDED, S.SETTLED}),
    S.DECLINED: frozenset(),
    S.SETTLED: frozenset(),
    S.REFUNDED: frozenset(),
    S.CANCELLED_BY_GUEST: frozenset(),
    S.CANCELLED_BY_HOST: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

CANCELLABLE_STATUSES = frozenset(
    {
        S.PENDING,
        S.CONFIRMED,
        S.AWAITING_PAYMENT,
        S.DEPOSIT_PAID,
        S.PAYMENT_AUTHORIZED,
        S.PAYMENT_HELD,
    }
)

DEPOSIT_RECORDABLE_STATUSES = frozenset(
    {S.CONFIRMED, S.AWAITING_PAYMENT, S.PAYMENT_AUTHORIZED, S.PAYMENT_HELD}
)

CHECK_IN_STATUSES = frozenset({S.DEPOSIT_PAID, S.PAYMENT_AUTHORIZED, S.PAYMENT_HELD})

DISPUTABLE_STATUSES = frozenset({S.CHECKED_OUT, S.DISPUTE_WINDOW})

# Bookings the settlement sweep may release. DISPUTED is never in here.
SETTLEABLE_STATUSES = frozenset({S.DISPUTE_WINDOW, S.SETTLEMENT_PENDING})

# Bookings that no longer hold their dates on the property calendar.
INACTIVE_STATUSES = frozenset({S.DECLINED, *_CANCELLED})


def parse_status(value: str | BookingStatus) -> BookingStatus:
    try:
        return BookingStatus(value)
    except ValueError:
        raise IllegalStateError(
            f"Unknown booking status {value!r}",
            current_status=str(value),
            reason="unknown_status",
        )


def can_transition(current: str | BookingStatus, target: str | BookingStatus) -> bool:
    try:
        return BookingStatus(target) in TRANSITIONS[BookingStatus(current)]
    except ValueError:
        return False


def assert_transition(current: str | BookingStatus, target: str | BookingStatus) -> None:
    """Raise IllegalStateError unless current -> target is an edge of the graph."""
    current_status = parse_status(current)
    target_status = parse_status(target)
    if target_status not in TRANSITIONS[current_status]:
        raise IllegalStateError(
            f"Invalid booking transition: {current_status.value} -> {target_status.value}",
            current_status=current_status.value,
            attempted=target_status.value,
            reason="invalid_transition",
        )
