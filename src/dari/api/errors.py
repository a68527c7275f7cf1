"""Translate booking domain errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException

from dari.domain.errors import (
    AuthorizationError,
    BookingError,
    ConflictError,
    IllegalStateError,
    NotFoundError,
    ValidationError,
    WindowExpiredError,
)

_STATUS_CODES: tuple[tuple[type[BookingError], int], ...] = (
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (IllegalStateError, 409),
    (ConflictError, 409),
    (WindowExpiredError, 410),
)


def status_code_for(exc: BookingError) -> int:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 400


def to_http_exception(exc: BookingError) -> HTTPException:
    return HTTPException(status_code=status_code_for(exc), detail=exc.to_dict())
