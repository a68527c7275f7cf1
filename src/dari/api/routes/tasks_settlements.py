"""Worker routes for settlement tasks.

- /tasks/settlements/settle: one booking, scheduled by Cloud Tasks at settlement_due_at
- /tasks/settlements/sweep: all due bookings, called by Cloud Scheduler
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from dari.api.task_auth import verify_task_auth
from dari.domain import settlement
from dari.observability.correlation import get_correlation_id
from dari.observability.logging import get_logger
from dari.observability.redaction import safe_log_context
from dari.tasks.contracts import InvalidTaskError, TaskEnvelopeV1

router = APIRouter(prefix="/tasks/settlements", tags=["tasks"])

logger = get_logger(__name__)

INVALID_JSON = object()


async def _read_json(request: Request) -> Any:
    """Authenticate the task call and return its JSON body (None if empty)."""
    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(path=request.url.path)},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")

    raw = await request.body()
    if not raw:
        return None
    try:
        return await request.json()
    except ValueError:
        return INVALID_JSON


@router.post("/settle")
async def handle_settle(request: Request) -> JSONResponse:
    """Settle one booking if its dispute window is over.

    Always 200 for noop/not_due_yet so Cloud Tasks does not retry; 500 on
    unexpected failure so it does.
    """
    correlation_id = get_correlation_id()
    body = await _read_json(request)

    try:
        envelope = TaskEnvelopeV1.from_dict(body, expected_task=settlement.SETTLE_TASK_NAME)
    except InvalidTaskError as e:
        return JSONResponse(status_code=400, content={"ok": False, "error": str(e)})

    booking_id = envelope.payload.get("booking_id", "")
    if not booking_id:
        return JSONResponse(
            status_code=400, content={"ok": False, "error": "missing booking_id"}
        )

    try:
        result = settlement.settle_booking(booking_id, correlation_id=correlation_id or None)
    except Exception:
        logger.exception(
            "settle task failed",
            extra={"extra_fields": safe_log_context(booking_id=booking_id)},
        )
        return JSONResponse(status_code=500, content={"ok": False, "error": "processing failed"})

    logger.info(
        "settle task completed",
        extra={
            "extra_fields": safe_log_context(
                booking_id=booking_id,
                task_id=envelope.task_id,
                status=result.get("status"),
            )
        },
    )
    return JSONResponse(status_code=200, content={"ok": True, **result})


@router.post("/sweep")
async def handle_sweep(request: Request) -> JSONResponse:
    """Settle every due booking. Optional body: {"limit": int}."""
    body = await _read_json(request)

    limit = None
    if isinstance(body, dict) and body.get("limit") is not None:
        try:
            limit = int(body["limit"])
        except (TypeError, ValueError):
            limit = 0
        if limit < 1:
            return JSONResponse(status_code=400, content={"ok": False, "error": "invalid limit"})
    elif body is INVALID_JSON:
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid json"})

    try:
        counts = settlement.sweep_due_settlements(limit=limit)
    except Exception:
        logger.exception("settlement sweep failed")
        return JSONResponse(status_code=500, content={"ok": False, "error": "processing failed"})

    return JSONResponse(status_code=200, content={"ok": True, **counts})
