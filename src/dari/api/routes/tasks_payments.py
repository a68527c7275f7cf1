"""Worker routes for payment-service callbacks.

The payment service reports gateway milestones here. Each handler is
idempotent, so callback retries are safe.

Expected payload: {"booking_id": str} (plus "held": bool for /authorized).
"""

from typing import Any, Callable

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from dari.api.errors import status_code_for
from dari.api.task_auth import verify_task_auth
from dari.domain import payments
from dari.domain.errors import BookingError
from dari.domain.models import Booking
from dari.observability.correlation import get_correlation_id
from dari.observability.logging import get_logger
from dari.observability.redaction import safe_log_context

router = APIRouter(prefix="/tasks/payments", tags=["tasks"])

logger = get_logger(__name__)


async def _handle(request: Request, action: str, apply: Callable[[dict[str, Any]], Booking]) -> JSONResponse:
    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(action=action)},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid json"})

    if not isinstance(payload, dict) or not payload.get("booking_id"):
        return JSONResponse(
            status_code=400, content={"ok": False, "error": "missing booking_id"}
        )

    try:
        booking = apply(payload)
    except BookingError as exc:
        logger.warning(
            "payment callback rejected",
            extra={
                "extra_fields": safe_log_context(
                    action=action,
                    booking_id=payload["booking_id"],
                    reason=exc.reason,
                )
            },
        )
        return JSONResponse(
            status_code=status_code_for(exc), content={"ok": False, **exc.to_dict()}
        )
    except Exception:
        logger.exception(
            "payment callback failed",
            extra={"extra_fields": safe_log_context(action=action, booking_id=payload["booking_id"])},
        )
        return JSONResponse(status_code=500, content={"ok": False, "error": "processing failed"})

    logger.info(
        "payment callback applied",
        extra={
            "extra_fields": safe_log_context(
                action=action, booking_id=booking.id, status=booking.status
            )
        },
    )
    return JSONResponse(
        status_code=200,
        content={
            "ok": True,
            "booking_id": booking.id,
            "status": booking.status,
            "payment_status": booking.payment_status,
            "refund_status": booking.refund_status,
        },
    )


def _correlation_id() -> str | None:
    return get_correlation_id() or None


@router.post("/deposit-captured")
async def deposit_captured(request: Request) -> JSONResponse:
    return await _handle(
        request,
        "deposit_captured",
        lambda p: payments.record_deposit(p["booking_id"], correlation_id=_correlation_id()),
    )


@router.post("/authorized")
async def payment_authorized(request: Request) -> JSONResponse:
    return await _handle(
        request,
        "authorized",
        lambda p: payments.record_payment_authorization(
            p["booking_id"], held=bool(p.get("held", False)), correlation_id=_correlation_id()
        ),
    )


@router.post("/refund-confirmed")
async def refund_confirmed(request: Request) -> JSONResponse:
    return await _handle(
        request,
        "refund_confirmed",
        lambda p: payments.confirm_refund(p["booking_id"], correlation_id=_correlation_id()),
    )
