"""Platform admin guard.

Booking parties (guest, host) are checked by the domain against the booking
itself. Admin-only actions (dispute review and resolution) need a row in
platform_admins.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException

from dari.api.auth import CurrentUser, get_current_user
from dari.infra import db


def is_platform_admin(user_id: str) -> bool:
    """True when user_id has a row in platform_admins."""
    with db.txn() as cur:
        row = db.fetchone(
            cur,
            "SELECT 1 FROM platform_admins WHERE user_id = %s",
            (user_id,),
        )
    return row is not None


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """FastAPI dependency: the caller must be a platform admin.

    Usage:
        @router.post("/something")
        def endpoint(admin: CurrentUser = Depends(require_admin)):
            ...
    """
    if not is_platform_admin(user.id):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
