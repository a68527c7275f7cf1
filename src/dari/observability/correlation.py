"""Correlation ID propagation for request and task tracing.

The id arrives on the X-Correlation-ID header (HTTP requests and worker
tasks alike), lives in a ContextVar for the duration of the request, and is
copied onto log lines and outbox events.
"""

import uuid
from contextvars import ContextVar, Token

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """Return the correlation ID bound to the current context ("" if none)."""
    return correlation_id_var.get()


def get_correlation_id_or_none() -> str | None:
    """Like get_correlation_id but None when unset (for nullable DB columns)."""
    return correlation_id_var.get() or None


def set_correlation_id(cid: str) -> Token[str]:
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    correlation_id_var.reset(token)
