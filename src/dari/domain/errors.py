"""Typed failures for booking operations.

Every error carries a machine-readable ``reason`` code and optional
``details`` so API routes can render a stable error body without parsing
messages.
"""

from __future__ import annotations

from typing import Any


class BookingError(Exception):
    """Base class for all booking domain failures."""

    kind = "booking_error"

    def __init__(self, message: str, *, reason: str | None = None, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason or self.kind
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "error": self.kind,
            "reason": self.reason,
            "message": self.message,
        }
        body.update(self.details)
        return body


class ValidationError(BookingError):
    """Input is malformed or violates a business rule (dates, overlap, amounts)."""

    kind = "validation_error"


class NotFoundError(BookingError):
    kind = "not_found"


class AuthorizationError(BookingError):
    """Caller is not the party allowed to perform the action."""

    kind = "authorization_error"


class IllegalStateError(BookingError):
    """Operation not permitted from the booking's current status."""

    kind = "illegal_state"

    def __init__(
        self,
        message: str,
        *,
        current_status: str,
        attempted: str | None = None,
        reason: str | None = None,
        **details: Any,
    ) -> None:
        super().__init__(
            message,
            reason=reason,
            current_status=current_status,
            attempted=attempted,
            **details,
        )
        self.current_status = current_status
        self.attempted = attempted


class WindowExpiredError(BookingError):
    """A time-gated action was attempted after its deadline."""

    kind = "window_expired"

    def __init__(self, message: str, *, deadline: str, reason: str | None = None) -> None:
        super().__init__(message, reason=reason, deadline=deadline)
        self.deadline = deadline


class ConflictError(BookingError):
    """Another writer changed the booking first. Safe to retry after a re-read."""

    kind = "conflict"

    def __init__(self, message: str, *, reason: str | None = None, **details: Any) -> None:
        super().__init__(message, reason=reason, retryable=True, **details)
