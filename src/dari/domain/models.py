"""Booking, dispute and property-terms records as read from Postgres."""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any

PAYMENT_PENDING = "pending"
PAYMENT_AUTHORIZED = "authorized"
PAYMENT_PAID = "paid"
PAYMENT_REFUNDED = "refunded"

REFUND_NONE = "none"
REFUND_PENDING = "pending"
REFUND_COMPLETED = "completed"

_MILLIMES = Decimal("0.001")


def format_amount(amount: Decimal | None) -> str | None:
    """Render a money amount with three decimals (TND has 1000 millimes)."""
    if amount is None:
        return None
    return format(Decimal(amount).quantize(_MILLIMES), "f")


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class Booking:
    id: str
    guest_id: str
    host_id: str
    property_id: str
    check_in_date: date
    check_out_date: date
    total_price: Decimal
    deposit_amount: Decimal
    currency: str
    cancellation_policy: str
    status: str
    guests_count: int = 1
    guest_message: str | None = None
    payment_status: str = PAYMENT_PENDING
    host_response: str | None = None
    responded_at: datetime | None = None
    actual_check_in: datetime | None = None
    actual_check_out: datetime | None = None
    settlement_due_at: datetime | None = None
    settled_at: datetime | None = None
    refund_amount: Decimal | None = None
    refund_reason: str | None = None
    refund_status: str = REFUND_NONE
    dispute_reason: str | None = None
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: tuple[Any, ...]) -> "Booking":
        """Build from a row selected with BOOKING_COLUMNS order."""
        values = dict(zip(BOOKING_COLUMNS, row))
        values["id"] = str(values["id"])
        return cls(**values)

    @property
    def deposit_collected(self) -> Decimal:
        """Deposit captured or held on the guest's card, the base for any refund."""
        if self.payment_status in (PAYMENT_AUTHORIZED, PAYMENT_PAID):
            return self.deposit_amount
        return Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "guest_id": self.guest_id,
            "host_id": self.host_id,
            "property_id": self.property_id,
            "check_in_date": _iso(self.check_in_date),
            "check_out_date": _iso(self.check_out_date),
            "total_price": format_amount(self.total_price),
            "deposit_amount": format_amount(self.deposit_amount),
            "currency": self.currency,
            "cancellation_policy": self.cancellation_policy,
            "guests_count": self.guests_count,
            "status": self.status,
            "payment_status": self.payment_status,
            "host_response": self.host_response,
            "responded_at": _iso(self.responded_at),
            "actual_check_in": _iso(self.actual_check_in),
            "actual_check_out": _iso(self.actual_check_out),
            "settlement_due_at": _iso(self.settlement_due_at),
            "settled_at": _iso(self.settled_at),
            "refund_amount": format_amount(self.refund_amount),
            "refund_reason": self.refund_reason,
            "refund_status": self.refund_status,
            "dispute_reason": self.dispute_reason,
            "version": self.version,
            "created_at": _iso(self.created_at),
        }


BOOKING_COLUMNS: tuple[str, ...] = tuple(f.name for f in fields(Booking))

# Columns a conditional update is allowed to touch.
UPDATABLE_COLUMNS = frozenset(BOOKING_COLUMNS) - {
    "id",
    "guest_id",
    "host_id",
    "property_id",
    "version",
    "created_at",
    "updated_at",
}


@dataclass(frozen=True)
class PropertyTerms:
    """Booking-relevant slice of a catalog property."""

    id: str
    host_id: str
    cancellation_policy: str | None
    minimum_stay: int = 1
    currency: str | None = None


DISPUTE_OPEN = "open"
DISPUTE_UNDER_REVIEW = "under_review"
DISPUTE_RESOLVED = "resolved"

DISPUTE_ACTIVE_STATUSES = (DISPUTE_OPEN, DISPUTE_UNDER_REVIEW)


@dataclass
class Dispute:
    id: str
    booking_id: str
    status: str
    reason_code: str
    description: str
    filed_by: str
    resolution: str | None = None
    refund_amount: Decimal | None = None
    reviewed_by: str | None = None
    resolved_by: str | None = None
    created_at: datetime | None = None
    resolved_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "status": self.status,
            "reason_code": self.reason_code,
            "filed_by": self.filed_by,
            "resolution": self.resolution,
            "refund_amount": format_amount(self.refund_amount),
            "created_at": _iso(self.created_at),
            "resolved_at": _iso(self.resolved_at),
        }


DISPUTE_COLUMNS: tuple[str, ...] = tuple(f.name for f in fields(Dispute))
