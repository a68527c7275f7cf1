"""Refund calculation for cancelled bookings.

calculate_refund() is pure: no I/O, no clock. The caller passes ``now``.

Rules:
- Host cancels: guest gets the whole deposit back, whatever the policy.
- Guest cancels: all-or-nothing by days left before check-in.
    flexible      >= 1 day
    moderate      >= 5 days
    strict        >= 14 days
    super_strict  never
- days_until_checkin = floor((check_in - now) / 1 day), clamped at 0.
- refund_amount is rounded half-up to whole currency units.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from dari.domain.errors import ValidationError
from dari.infra.time import as_utc_datetime

_SECONDS_PER_DAY = 86400
_WHOLE_UNIT = Decimal("1")


class CancellationPolicy(str, Enum):
    FLEXIBLE = "flexible"
    MODERATE = "moderate"
    STRICT = "strict"
    SUPER_STRICT = "super_strict"

    @classmethod
    def parse(cls, value: "str | CancellationPolicy") -> "CancellationPolicy":
        """Accept enum values and catalog labels ("Flexible", "Super Strict")."""
        if isinstance(value, CancellationPolicy):
            return value
        normalized = str(value).strip().lower().replace(" ", "_").replace("-", "_")
        try:
            return cls(normalized)
        except ValueError:
            raise ValidationError(
                f"Unknown cancellation policy {value!r}",
                reason="unknown_cancellation_policy",
            )


# Minimum full days before check-in for a full guest refund. None = never.
FULL_REFUND_MIN_DAYS: dict[CancellationPolicy, int | None] = {
    CancellationPolicy.FLEXIBLE: 1,
    CancellationPolicy.MODERATE: 5,
    CancellationPolicy.STRICT: 14,
    CancellationPolicy.SUPER_STRICT: None,
}

POLICY_DESCRIPTIONS: dict[CancellationPolicy, str] = {
    CancellationPolicy.FLEXIBLE: "Full refund if cancelled at least 24 hours before check-in.",
    CancellationPolicy.MODERATE: "Full refund if cancelled at least 5 days before check-in.",
    CancellationPolicy.STRICT: "Full refund if cancelled at least 14 days before check-in.",
    CancellationPolicy.SUPER_STRICT: "No refunds for guest cancellations.",
}

CANCELLED_BY_GUEST = "guest"
CANCELLED_BY_HOST = "host"
CANCELLATION_ACTORS = (CANCELLED_BY_GUEST, CANCELLED_BY_HOST)


@dataclass(frozen=True)
class RefundCalculation:
    refund_percentage: int
    refund_amount: Decimal
    reason: str
    days_until_checkin: int
    cancellation_policy: CancellationPolicy
    deposit_paid: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "refund_percentage": self.refund_percentage,
            "refund_amount": format(self.refund_amount, "f"),
            "reason": self.reason,
            "days_until_checkin": self.days_until_checkin,
            "cancellation_policy": self.cancellation_policy.value,
            "deposit_paid": format(self.deposit_paid, "f"),
        }


def days_until(check_in: date | datetime, now: datetime) -> int:
    """Whole days from now until check_in, never negative."""
    delta = as_utc_datetime(check_in) - as_utc_datetime(now)
    return max(0, math.floor(delta.total_seconds() / _SECONDS_PER_DAY))


def round_amount(amount: Decimal) -> Decimal:
    return amount.quantize(_WHOLE_UNIT, rounding=ROUND_HALF_UP)


def _day_word(n: int) -> str:
    return "day" if n == 1 else "days"


def calculate_refund(
    policy: str | CancellationPolicy,
    deposit_paid: Decimal | int | float,
    check_in: date | datetime,
    cancelled_by: str,
    now: datetime,
) -> RefundCalculation:
    """Compute the refund owed when a booking is cancelled.

    Args:
        policy: Cancellation policy snapshotted on the booking.
        deposit_paid: Amount the guest actually paid (0 if nothing collected).
        check_in: Check-in date (midnight UTC) or exact datetime.
        cancelled_by: "guest" or "host".
        now: Reference time of the cancellation.

    Returns:
        RefundCalculation with percentage, rounded amount and a human reason.

    Raises:
        ValidationError: Unknown policy or actor, or a negative deposit.
    """
    resolved_policy = CancellationPolicy.parse(policy)
    if cancelled_by not in CANCELLATION_ACTORS:
        raise ValidationError(
            f"cancelled_by must be one of {CANCELLATION_ACTORS}, got {cancelled_by!r}",
            reason="invalid_actor_role",
        )

    deposit = Decimal(str(deposit_paid))
    if deposit < 0:
        raise ValidationError("deposit_paid cannot be negative", reason="negative_deposit")

    days = days_until(check_in, now)

    if cancelled_by == CANCELLED_BY_HOST:
        percentage = 100
        reason = "Cancelled by host: full refund regardless of policy"
    else:
        min_days = FULL_REFUND_MIN_DAYS[resolved_policy]
        label = resolved_policy.value.replace("_", " ").title()
        if min_days is None:
            percentage = 0
            reason = f"{label} policy: no refund for guest cancellations"
        elif days >= min_days:
            percentage = 100
            reason = (
                f"{label} policy: cancelled {days} {_day_word(days)} before check-in "
                f"(at least {min_days} {_day_word(min_days)} required), full refund"
            )
        else:
            percentage = 0
            reason = (
                f"{label} policy: cancelled {days} {_day_word(days)} before check-in "
                f"(less than {min_days} {_day_word(min_days)}), no refund"
            )

    refund_amount = round_amount(deposit * percentage / 100)

    return RefundCalculation(
        refund_percentage=percentage,
        refund_amount=refund_amount,
        reason=reason,
        days_until_checkin=days,
        cancellation_policy=resolved_policy,
        deposit_paid=deposit,
    )
