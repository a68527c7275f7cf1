"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from dari.api.routes import bookings, disputes

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(bookings.router)
router.include_router(disputes.router)
