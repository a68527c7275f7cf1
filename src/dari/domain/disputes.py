"""Post-stay disputes.

A guest may dispute a stay until the dispute window closes (settlement_due_at,
48h after checkout by default). Filing moves the booking to ``disputed``,
which freezes settlement, and opens a dispute record that an admin reviews
and resolves:

    open -> under_review -> resolved

Resolution is the only way out of ``disputed``: to ``refunded`` (guest_favor,
split) or ``settled`` (host_favor).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from dari.domain.booking_states import DISPUTABLE_STATUSES, BookingStatus
from dari.domain.errors import (
    ConflictError,
    IllegalStateError,
    NotFoundError,
    ValidationError,
    WindowExpiredError,
)
from dari.domain.lifecycle import (
    DISPUTE_FILED,
    DISPUTE_RESOLVED,
    DISPUTE_UNDER_REVIEW,
    PAYOUT_REQUESTED,
    REFUND_REQUESTED,
    ROLE_GUEST,
    apply_transition,
    load_booking,
    require_party,
)
from dari.domain.models import (
    DISPUTE_OPEN,
    DISPUTE_RESOLVED as DISPUTE_STATUS_RESOLVED,
    DISPUTE_UNDER_REVIEW as DISPUTE_STATUS_UNDER_REVIEW,
    REFUND_NONE,
    REFUND_PENDING,
    Booking,
    Dispute,
)
from dari.infra import db
from dari.infra.repositories import disputes_repository, outbox_repository
from dari.infra.settings import get_booking_settings
from dari.infra.time import utc_now
from dari.observability.correlation import get_correlation_id_or_none
from dari.observability.logging import get_logger
from dari.observability.redaction import safe_log_context

logger = get_logger(__name__)

DISPUTE_REASONS: dict[str, str] = {
    "property_not_as_described": "Property not as described",
    "cleanliness_issues": "Cleanliness issues",
    "amenities_missing": "Amenities missing or broken",
    "safety_concerns": "Safety concerns",
    "host_behavior": "Issues with host behavior",
    "early_checkout_forced": "Forced to leave early",
    "other": "Other issue",
}

MIN_DESCRIPTION_LENGTH = 20
MAX_DESCRIPTION_LENGTH = 5000

RESOLUTION_GUEST_FAVOR = "guest_favor"
RESOLUTION_HOST_FAVOR = "host_favor"
RESOLUTION_SPLIT = "split"
RESOLUTIONS = (RESOLUTION_GUEST_FAVOR, RESOLUTION_HOST_FAVOR, RESOLUTION_SPLIT)

_MILLIMES = Decimal("0.001")


def compose_dispute_reason(reason_code: str, description: str) -> str:
    """Build the stored reason string, e.g. "Safety concerns: broken stairs ..."."""
    return f"{DISPUTE_REASONS[reason_code]}: {description.strip()}"


def dispute_deadline(booking: Booking) -> datetime:
    """Last moment a dispute may be filed for this booking."""
    if booking.settlement_due_at is not None:
        return booking.settlement_due_at
    if booking.actual_check_out is None:
        raise IllegalStateError(
            "Booking has no recorded checkout",
            current_status=booking.status,
            reason="missing_checkout",
        )
    return booking.actual_check_out + get_booking_settings().dispute_window


def _validate_dispute_input(reason_code: str, description: str) -> None:
    if reason_code not in DISPUTE_REASONS:
        raise ValidationError(
            f"Unknown dispute reason {reason_code!r}",
            reason="invalid_dispute_reason",
            allowed=sorted(DISPUTE_REASONS),
        )
    text = (description or "").strip()
    if len(text) < MIN_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Please describe the issue in at least {MIN_DESCRIPTION_LENGTH} characters",
            reason="description_too_short",
        )
    if len(text) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters",
            reason="description_too_long",
        )


def file_dispute(
    booking_id: str,
    guest_id: str,
    reason_code: str,
    description: str,
    *,
    now: datetime | None = None,
    correlation_id: str | None = None,
) -> Booking:
    """Guest disputes a finished stay, freezing its settlement.

    Raises:
        ValidationError: Unknown reason code or description under 20 chars.
        NotFoundError: Unknown booking.
        AuthorizationError: guest_id is not the booking's guest.
        IllegalStateError: Booking is not checked_out/dispute_window.
        WindowExpiredError: now is past the dispute deadline.
        ConflictError: Booking changed concurrently (e.g. just settled).
    """
    _validate_dispute_input(reason_code, description)
    now = now or utc_now()
    correlation_id = correlation_id or get_correlation_id_or_none()

    with db.txn() as cur:
        booking = load_booking(cur, booking_id)
        require_party(booking, guest_id, ROLE_GUEST)

        if booking.status not in DISPUTABLE_STATUSES:
            raise IllegalStateError(
                f"Disputes can only be filed after checkout (status {booking.status})",
                current_status=booking.status,
                attempted=BookingStatus.DISPUTED.value,
                reason="not_disputable",
            )

        deadline = dispute_deadline(booking)
        if now > deadline:
            raise WindowExpiredError(
                f"The dispute window closed at {deadline.isoformat()}",
                deadline=deadline.isoformat(),
                reason="dispute_window_closed",
            )

        booking = apply_transition(
            cur,
            booking,
            BookingStatus.DISPUTED,
            {"dispute_reason": compose_dispute_reason(reason_code, description)},
        )
        dispute = disputes_repository.insert_dispute(
            cur,
            booking_id=booking.id,
            reason_code=reason_code,
            description=description.strip(),
            filed_by=str(guest_id),
        )
        outbox_repository.emit_booking_event(
            cur,
            booking,
            DISPUTE_FILED,
            correlation_id=correlation_id,
            dispute_id=dispute.id,
            reason_code=reason_code,
        )

    logger.info(
        "dispute filed",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                booking_id=booking_id,
                dispute_id=dispute.id,
                reason_code=reason_code,
            )
        },
    )
    return booking


def _active_dispute_or_raise(cur, booking_id: str) -> Dispute:
    dispute = disputes_repository.get_active_dispute(cur, booking_id)
    if dispute is None:
        raise NotFoundError(
            f"No open dispute for booking {booking_id}", reason="dispute_not_found"
        )
    return dispute


def start_dispute_review(
    booking_id: str,
    admin_id: str,
    *,
    correlation_id: str | None = None,
) -> Dispute:
    """Admin picks up an open dispute (open -> under_review). Repeats are no-ops."""
    correlation_id = correlation_id or get_correlation_id_or_none()

    with db.txn() as cur:
        booking = load_booking(cur, booking_id)
        if booking.status != BookingStatus.DISPUTED:
            raise IllegalStateError(
                f"Booking is not disputed (status {booking.status})",
                current_status=booking.status,
                reason="not_disputed",
            )

        dispute = _active_dispute_or_raise(cur, booking_id)
        if dispute.status == DISPUTE_STATUS_UNDER_REVIEW:
            return dispute

        updated = disputes_repository.update_dispute(
            cur,
            dispute.id,
            expected_status=DISPUTE_OPEN,
            changes={"status": DISPUTE_STATUS_UNDER_REVIEW, "reviewed_by": str(admin_id)},
        )
        if updated is None:
            raise ConflictError(
                f"Dispute {dispute.id} was modified concurrently",
                reason="concurrent_update",
            )

        outbox_repository.emit_booking_event(
            cur,
            booking,
            DISPUTE_UNDER_REVIEW,
            correlation_id=correlation_id,
            dispute_id=updated.id,
        )

    return updated


def _resolution_amounts(
    resolution: str,
    refund_amount: Decimal | None,
    deposit: Decimal,
) -> tuple[Decimal, Decimal]:
    """Return (refund, payout) for a resolution, validating the requested refund."""
    if refund_amount is not None:
        refund_amount = Decimal(str(refund_amount)).quantize(_MILLIMES)
        if refund_amount < 0 or refund_amount > deposit:
            raise ValidationError(
                "Refund amount must be between 0 and the deposit",
                reason="invalid_refund_amount",
                deposit_amount=format(deposit, "f"),
            )

    if resolution == RESOLUTION_GUEST_FAVOR:
        refund = deposit if refund_amount is None else refund_amount
        if refund <= 0:
            raise ValidationError(
                "A guest_favor resolution must refund the guest",
                reason="invalid_refund_amount",
                deposit_amount=format(deposit, "f"),
            )
    elif resolution == RESOLUTION_HOST_FAVOR:
        if refund_amount not in (None, Decimal("0")):
            raise ValidationError(
                "A host_favor resolution cannot refund the guest",
                reason="invalid_refund_amount",
            )
        refund = Decimal("0")
    else:
        if refund_amount is None or not (0 < refund_amount < deposit):
            raise ValidationError(
                "A split resolution needs a refund amount strictly between 0 and the deposit",
                reason="invalid_refund_amount",
                deposit_amount=format(deposit, "f"),
            )
        refund = refund_amount

    return refund, deposit - refund


def resolve_dispute(
    booking_id: str,
    admin_id: str,
    resolution: str,
    refund_amount: Decimal | int | str | None = None,
    *,
    now: datetime | None = None,
    correlation_id: str | None = None,
) -> Booking:
    """Admin closes a dispute.

    guest_favor: refunded, refund = refund_amount (> 0) or the whole deposit.
    split:       refunded, 0 < refund_amount < deposit, host gets the rest.
    host_favor:  settled, the host gets the whole deposit.

    Raises:
        ValidationError: Unknown resolution or refund amount out of range.
        NotFoundError: Unknown booking.
        IllegalStateError: Booking is not disputed.
        ConflictError: Booking changed concurrently.
    """
    if resolution not in RESOLUTIONS:
        raise ValidationError(
            f"resolution must be one of {RESOLUTIONS}, got {resolution!r}",
            reason="invalid_resolution",
        )
    now = now or utc_now()
    correlation_id = correlation_id or get_correlation_id_or_none()

    with db.txn() as cur:
        booking = load_booking(cur, booking_id)
        if booking.status != BookingStatus.DISPUTED:
            raise IllegalStateError(
                f"Only disputed bookings can be resolved (status {booking.status})",
                current_status=booking.status,
                reason="not_disputed",
            )

        refund, payout = _resolution_amounts(
            resolution,
            Decimal(str(refund_amount)) if refund_amount is not None else None,
            booking.deposit_amount,
        )

        if resolution == RESOLUTION_HOST_FAVOR:
            target = BookingStatus.SETTLED
            changes = {"settled_at": now}
        else:
            target = BookingStatus.REFUNDED
            changes = {
                "refund_amount": refund,
                "refund_reason": f"Dispute resolved: {resolution}",
                "refund_status": REFUND_PENDING if refund > 0 else REFUND_NONE,
            }

        booking = apply_transition(cur, booking, target, changes)

        dispute = disputes_repository.get_active_dispute(cur, booking_id)
        if dispute is not None:
            disputes_repository.update_dispute(
                cur,
                dispute.id,
                expected_status=dispute.status,
                changes={
                    "status": DISPUTE_STATUS_RESOLVED,
                    "resolution": resolution,
                    "refund_amount": refund,
                    "resolved_by": str(admin_id),
                    "resolved_at": now,
                },
            )

        outbox_repository.emit_booking_event(
            cur,
            booking,
            DISPUTE_RESOLVED,
            correlation_id=correlation_id,
            dispute_id=dispute.id if dispute else None,
            resolution=resolution,
            refund_amount=refund,
            payout_amount=payout,
        )
        if refund > 0:
            outbox_repository.emit_booking_event(
                cur,
                booking,
                REFUND_REQUESTED,
                correlation_id=correlation_id,
                amount=refund,
                source="dispute",
            )
        if payout > 0:
            outbox_repository.emit_booking_event(
                cur,
                booking,
                PAYOUT_REQUESTED,
                correlation_id=correlation_id,
                amount=payout,
                source="dispute",
            )

    logger.info(
        "dispute resolved",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                booking_id=booking_id,
                resolution=resolution,
                refund_amount=refund,
                payout_amount=payout,
            )
        },
    )
    return booking
