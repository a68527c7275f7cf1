"""Worker/internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter

from dari.api.routes import tasks_payments, tasks_settlements

router = APIRouter()


@router.get("/tasks/health")
def tasks_health() -> dict:
    """Tasks subsystem health check."""
    return {"status": "ok", "subsystem": "tasks"}


router.include_router(tasks_settlements.router)
router.include_router(tasks_payments.router)
