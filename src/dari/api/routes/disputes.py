"""Dispute endpoints: guests file, platform admins review and resolve."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel

from dari.api.auth import CurrentUser, get_current_user
from dari.api.errors import to_http_exception
from dari.api.rbac import require_admin
from dari.domain import disputes
from dari.domain.errors import BookingError
from dari.observability.correlation import get_correlation_id


class FileDisputeRequest(BaseModel):
    reason_code: str
    description: str


class ResolveDisputeRequest(BaseModel):
    resolution: Literal["guest_favor", "host_favor", "split"]
    refund_amount: Decimal | None = None


router = APIRouter(prefix="/bookings/{booking_id}/disputes", tags=["disputes"])


@router.post("", status_code=201)
def file_dispute(
    body: FileDisputeRequest,
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Guest reports a problem with the stay, within the dispute window."""
    try:
        booking = disputes.file_dispute(
            booking_id,
            user.id,
            body.reason_code,
            body.description,
            correlation_id=get_correlation_id() or None,
        )
    except BookingError as exc:
        raise to_http_exception(exc)
    return booking.to_dict()


@router.post("/actions/review")
def start_review(
    booking_id: str = Path(..., description="Booking UUID"),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    try:
        dispute = disputes.start_dispute_review(
            booking_id, admin.id, correlation_id=get_correlation_id() or None
        )
    except BookingError as exc:
        raise to_http_exception(exc)
    return dispute.to_dict()


@router.post("/actions/resolve")
def resolve(
    body: ResolveDisputeRequest,
    booking_id: str = Path(..., description="Booking UUID"),
    admin: CurrentUser = Depends(require_admin),
) -> dict:
    """Close the dispute: refund the guest, pay the host, or split the deposit."""
    try:
        booking = disputes.resolve_dispute(
            booking_id,
            admin.id,
            body.resolution,
            body.refund_amount,
            correlation_id=get_correlation_id() or None,
        )
    except BookingError as exc:
        raise to_http_exception(exc)
    return booking.to_dict()
