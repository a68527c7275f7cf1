"""Booking endpoints for guests and hosts.

Every action is a thin wrapper over one domain operation. The caller's
identity comes from the bearer token; the domain decides whether that
caller is the right party for the booking.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from pydantic import BaseModel, Field

from dari.api import rbac
from dari.api.auth import CurrentUser, get_current_user
from dari.api.errors import to_http_exception
from dari.domain import booking_requests, cancellation, payments, settlement, stays
from dari.domain.errors import BookingError
from dari.observability.correlation import get_correlation_id
from dari.observability.logging import get_logger
from dari.observability.redaction import safe_log_context
from dari.tasks.client import TasksClient, get_tasks_client


class CreateBookingRequest(BaseModel):
    property_id: str
    check_in_date: date
    check_out_date: date
    total_price: Decimal
    guests_count: int = 1
    message: str | None = None
    deposit_amount: Decimal | None = None


class RespondRequest(BaseModel):
    """Optional note to the guest, stored as host_response."""

    message: str | None = Field(default=None, max_length=1000)


class CancelBookingRequest(BaseModel):
    actor_role: Literal["guest", "host"]


router = APIRouter(prefix="/bookings", tags=["bookings"])

logger = get_logger(__name__)


@router.post("", status_code=201)
def create_booking(
    body: CreateBookingRequest,
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Request a stay. The booking starts pending until the host answers."""
    try:
        booking = booking_requests.request_booking(
            user.id,
            body.property_id,
            body.check_in_date,
            body.check_out_date,
            body.total_price,
            guests_count=body.guests_count,
            guest_message=body.message,
            deposit_amount=body.deposit_amount,
            correlation_id=get_correlation_id() or None,
        )
    except BookingError as exc:
        raise to_http_exception(exc)
    return booking.to_dict()


@router.get("/{booking_id}")
def get_booking(
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Read a booking. Visible to its guest, its host and platform admins."""
    try:
        booking = booking_requests.get_booking(booking_id)
    except BookingError as exc:
        raise to_http_exception(exc)

    if user.id not in (booking.guest_id, booking.host_id) and not rbac.is_platform_admin(user.id):
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking.to_dict()


def _respond(booking_id: str, user: CurrentUser, decision: str, body: RespondRequest | None) -> dict:
    try:
        booking = booking_requests.respond_to_request(
            booking_id,
            user.id,
            decision,
            body.message if body else None,
            correlation_id=get_correlation_id() or None,
        )
    except BookingError as exc:
        raise to_http_exception(exc)

    logger.info(
        "booking request answered",
        extra={
            "extra_fields": safe_log_context(
                booking_id=booking_id, decision=decision, status=booking.status
            )
        },
    )
    return booking.to_dict()


@router.post("/{booking_id}/actions/accept")
def accept_request(
    body: RespondRequest | None = None,
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Host accepts a pending request; opens the host/guest conversation."""
    return _respond(booking_id, user, booking_requests.DECISION_ACCEPT, body)


@router.post("/{booking_id}/actions/decline")
def decline_request(
    body: RespondRequest | None = None,
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return _respond(booking_id, user, booking_requests.DECISION_DECLINE, body)


@router.post("/{booking_id}/actions/begin-payment")
def begin_payment(
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        booking = payments.begin_payment(
            booking_id, user.id, correlation_id=get_correlation_id() or None
        )
    except BookingError as exc:
        raise to_http_exception(exc)
    return booking.to_dict()


@router.get("/{booking_id}/refund-quote")
def refund_quote(
    booking_id: str = Path(..., description="Booking UUID"),
    cancelled_by: Literal["guest", "host"] = Query("guest"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Preview what a cancellation right now would refund."""
    try:
        booking = booking_requests.get_booking(booking_id)
        if user.id not in (booking.guest_id, booking.host_id):
            raise HTTPException(status_code=404, detail="Booking not found")
        quote = cancellation.quote_cancellation_refund(booking_id, cancelled_by)
    except BookingError as exc:
        raise to_http_exception(exc)
    return {"booking_id": booking_id, "currency": booking.currency, **quote.to_dict()}


@router.post("/{booking_id}/actions/cancel")
def cancel_booking(
    body: CancelBookingRequest,
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Cancel as the booking's guest or host; the refund follows the booking's policy."""
    try:
        booking = cancellation.cancel_booking(
            booking_id,
            body.actor_role,
            user.id,
            correlation_id=get_correlation_id() or None,
        )
    except BookingError as exc:
        raise to_http_exception(exc)
    return booking.to_dict()


@router.post("/{booking_id}/actions/check-in")
def check_in(
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        booking = stays.check_in(booking_id, user.id, correlation_id=get_correlation_id() or None)
    except BookingError as exc:
        raise to_http_exception(exc)
    return booking.to_dict()


@router.post("/{booking_id}/actions/check-out")
def check_out(
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
    tasks_client: TasksClient = Depends(get_tasks_client),
) -> dict:
    """Record checkout and schedule settlement for the end of the dispute window."""
    correlation_id = get_correlation_id() or None
    try:
        booking = stays.check_out(booking_id, user.id, correlation_id=correlation_id)
    except BookingError as exc:
        raise to_http_exception(exc)

    # The sweep settles the booking even if scheduling fails here.
    try:
        settlement.schedule_settlement(booking, tasks_client, correlation_id=correlation_id)
    except Exception:
        logger.exception(
            "failed to schedule settlement task",
            extra={"extra_fields": safe_log_context(booking_id=booking_id)},
        )

    return booking.to_dict()
