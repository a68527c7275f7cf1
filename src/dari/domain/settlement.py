"""Settlement of checked-out bookings - releasing held funds to the host.

Two triggers share settle_booking():
- a per-booking task scheduled at checkout for settlement_due_at
- a periodic sweep over every booking whose due time has passed

Each booking is settled by one conditional update in its own transaction,
so a stopped sweep never leaves a booking half-settled. Disputed bookings
are never selected and a dispute filed concurrently wins the race or makes
the settle a noop.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

from dari.domain.booking_states import SETTLEABLE_STATUSES, BookingStatus
from dari.domain.errors import ConflictError
from dari.domain.lifecycle import BOOKING_SETTLED, PAYOUT_REQUESTED, apply_transition
from dari.domain.models import Booking
from dari.infra import db
from dari.infra.repositories import bookings_repository, outbox_repository
from dari.infra.settings import get_booking_settings
from dari.infra.time import utc_now
from dari.observability.correlation import get_correlation_id_or_none
from dari.observability.logging import get_logger
from dari.observability.redaction import safe_log_context
from dari.tasks.client import TasksClient
from dari.tasks.contracts import TaskEnvelopeV1

logger = get_logger(__name__)

SETTLE_TASK_NAME = "settlements.settle"
SETTLE_TASK_PATH = "/tasks/settlements/settle"


def compute_settlement_due_at(checked_out_at: datetime, window: timedelta) -> datetime:
    return checked_out_at + window


def settle_booking(
    booking_id: str,
    *,
    now: datetime | None = None,
    correlation_id: str | None = None,
) -> dict:
    """Settle one booking if its hold period is over.

    Returns:
        Dict with result status:
        - {"status": "noop"} - booking missing, not settleable (e.g. disputed,
          already settled) or changed concurrently
        - {"status": "not_due_yet", "settlement_due_at": str}
        - {"status": "settled", "booking_id": str, "payout_amount": str}
    """
    now = now or utc_now()
    correlation_id = correlation_id or get_correlation_id_or_none()

    with db.txn() as cur:
        booking = bookings_repository.get_booking(cur, booking_id)
        if booking is None:
            return {"status": "noop", "reason": "not_found"}

        if booking.status not in SETTLEABLE_STATUSES:
            return {"status": "noop", "reason": f"status_{booking.status}"}

        if booking.settlement_due_at is None or now < booking.settlement_due_at:
            return {
                "status": "not_due_yet",
                "settlement_due_at": (
                    booking.settlement_due_at.isoformat() if booking.settlement_due_at else None
                ),
            }

        try:
            booking = apply_transition(
                cur, booking, BookingStatus.SETTLED, {"settled_at": now}
            )
        except ConflictError:
            return {"status": "noop", "reason": "concurrent_update"}

        payout = booking.deposit_amount
        outbox_repository.emit_booking_event(
            cur,
            booking,
            PAYOUT_REQUESTED,
            correlation_id=correlation_id,
            amount=payout,
            source="settlement",
        )
        outbox_repository.emit_booking_event(
            cur, booking, BOOKING_SETTLED, correlation_id=correlation_id, at=now
        )

    return {
        "status": "settled",
        "booking_id": booking.id,
        "payout_amount": format(payout, "f"),
    }


def sweep_due_settlements(
    *,
    now: datetime | None = None,
    limit: int | None = None,
    should_stop: Callable[[], bool] | None = None,
) -> dict:
    """Settle every booking whose settlement_due_at has passed.

    Bookings are settled one transaction each. A failure on one booking is
    logged and counted; the sweep moves on to the next.

    Args:
        now: Reference time (defaults to utc_now()).
        limit: Max bookings per sweep (defaults to SETTLEMENT_SWEEP_BATCH_SIZE).
        should_stop: Checked between bookings; True ends the sweep early.

    Returns:
        Counts: {"selected", "settled", "skipped", "failed"}.
    """
    now = now or utc_now()
    if limit is None:
        limit = get_booking_settings().sweep_batch_size

    with db.txn() as cur:
        due_ids = bookings_repository.list_due_for_settlement(cur, now=now, limit=limit)

    counts = {"selected": len(due_ids), "settled": 0, "skipped": 0, "failed": 0}

    for booking_id in due_ids:
        if should_stop is not None and should_stop():
            break
        try:
            result = settle_booking(booking_id, now=now)
        except Exception:
            counts["failed"] += 1
            logger.exception(
                "settlement failed",
                extra={"extra_fields": safe_log_context(booking_id=booking_id)},
            )
            continue
        if result["status"] == "settled":
            counts["settled"] += 1
        else:
            counts["skipped"] += 1

    if due_ids:
        logger.info(
            "settlement sweep completed",
            extra={"extra_fields": safe_log_context(**counts)},
        )
    return counts


def schedule_settlement(
    booking: Booking,
    tasks_client: TasksClient,
    *,
    correlation_id: str | None = None,
) -> bool:
    """Enqueue the settle task for booking.settlement_due_at.

    Idempotent per booking: the task id is derived from the booking id.
    """
    task_id = f"settle-{booking.id}"
    envelope = TaskEnvelopeV1(
        task_name=SETTLE_TASK_NAME,
        payload={"booking_id": booking.id},
        task_id=task_id,
    )
    return tasks_client.enqueue_http(
        task_id=task_id,
        url_path=SETTLE_TASK_PATH,
        payload=envelope.to_dict(),
        correlation_id=correlation_id,
        schedule_time=booking.settlement_due_at,
    )
