"""Periodic settlement sweep for single-container deployments.

Where Cloud Scheduler is available it calls /tasks/settlements/sweep and
this loop stays off. Otherwise run it inside the worker
(SETTLEMENT_SWEEPER_ENABLED=true) or standalone:

    python -m dari.workers.settlement_sweeper

Stopping is checked between bookings, never in the middle of one.
"""

from __future__ import annotations

import signal
import threading

from dari.domain import settlement
from dari.infra.settings import get_booking_settings
from dari.observability.logging import get_logger
from dari.observability.redaction import safe_log_context

logger = get_logger(__name__)


class SettlementSweeper:
    """Background thread running sweep_due_settlements every interval_seconds."""

    def __init__(self, interval_seconds: int = 300, batch_size: int | None = None) -> None:
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> dict:
        """One sweep. Errors are logged and reported as {"error": ...}."""
        try:
            return settlement.sweep_due_settlements(
                limit=self.batch_size,
                should_stop=self._stop_event.is_set,
            )
        except Exception as e:
            logger.error(
                "settlement sweep loop error",
                exc_info=True,
                extra={"extra_fields": safe_log_context(error=str(e))},
            )
            return {"error": str(e)}

    def run_forever(self) -> None:
        logger.info(
            "settlement sweeper started",
            extra={"extra_fields": safe_log_context(interval_seconds=self.interval_seconds)},
        )
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(self.interval_seconds)
        logger.info("settlement sweeper stopped")

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run_forever, name="settlement-sweeper", daemon=True
        )
        self._thread.start()

    def request_stop(self) -> None:
        self._stop_event.set()

    def stop(self, timeout: float | None = 30.0) -> None:
        self.request_stop()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


def main() -> None:
    settings = get_booking_settings()
    sweeper = SettlementSweeper(
        interval_seconds=settings.sweep_interval_seconds,
        batch_size=settings.sweep_batch_size,
    )

    def _shutdown(signum, frame) -> None:
        sweeper.request_stop()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)
    sweeper.run_forever()


if __name__ == "__main__":
    main()
