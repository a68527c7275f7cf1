"""FastAPI application factory with role-based route mounting."""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Literal

from fastapi import FastAPI, Request, Response

from dari.infra.settings import get_booking_settings
from dari.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from dari.workers.settlement_sweeper import SettlementSweeper

from .routers import public, worker

AppRole = Literal["public", "worker"]


def create_app(role: AppRole | None = None) -> FastAPI:
    """Create FastAPI app with routes based on APP_ROLE.

    Args:
        role: Explicit role override. If None, reads from APP_ROLE env var.
              Defaults to "public" if env var is not set.

    The worker role also runs the in-process settlement sweeper when
    SETTLEMENT_SWEEPER_ENABLED is set.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]

    settings = get_booking_settings()
    run_sweeper = role == "worker" and settings.sweeper_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper = SettlementSweeper(
            interval_seconds=settings.sweep_interval_seconds,
            batch_size=settings.sweep_batch_size,
        )
        if run_sweeper:
            sweeper.start()
        app.state.settlement_sweeper = sweeper
        try:
            yield
        finally:
            if run_sweeper:
                sweeper.stop()

    app = FastAPI(
        title="Dari Bookings",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(public.router)

    if role == "worker":
        app.include_router(worker.router)

    return app
