"""HTTP tests for the worker task routes (settlements and payment callbacks)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from dari.api.factory import create_app
from dari.domain.settlement import SETTLE_TASK_NAME
from dari.tasks.contracts import TaskEnvelopeV1


@pytest.fixture
def worker(store):
    with patch("dari.api.routes.tasks_settlements.verify_task_auth", return_value=True), \
         patch("dari.api.routes.tasks_payments.verify_task_auth", return_value=True):
        yield TestClient(create_app(role="worker"))


def _in_window(store, due_in: timedelta):
    due = datetime.now(timezone.utc) + due_in
    return store.add_booking(
        status="dispute_window", actual_check_out=due - timedelta(hours=48), settlement_due_at=due
    )


def _settle_body(booking_id: str, task_name: str = SETTLE_TASK_NAME) -> dict:
    return TaskEnvelopeV1(
        task_name=task_name, payload={"booking_id": booking_id}, task_id=f"settle-{booking_id}"
    ).to_dict()


class TestSettleTask:
    def test_settles_due_booking(self, worker, store):
        booking = _in_window(store, timedelta(minutes=-5))

        response = worker.post("/tasks/settlements/settle", json=_settle_body(booking.id))

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "status": "settled",
            "booking_id": booking.id,
            "payout_amount": "200",
        }
        assert store.booking(booking.id).status == "settled"

    def test_early_task_is_not_retried(self, worker, store):
        booking = _in_window(store, timedelta(hours=3))

        response = worker.post("/tasks/settlements/settle", json=_settle_body(booking.id))

        assert response.status_code == 200
        assert response.json()["status"] == "not_due_yet"
        assert store.booking(booking.id).status == "dispute_window"

    def test_disputed_booking_is_noop(self, worker, store):
        booking = store.add_booking(status="disputed", settlement_due_at=datetime.now(timezone.utc))

        response = worker.post("/tasks/settlements/settle", json=_settle_body(booking.id))

        assert response.json() == {"ok": True, "status": "noop", "reason": "status_disputed"}

    def test_wrong_task_name(self, worker, store):
        response = worker.post("/tasks/settlements/settle", json=_settle_body("b-1", "payments.capture"))
        assert response.status_code == 400

    def test_missing_booking_id(self, worker):
        body = TaskEnvelopeV1(task_name=SETTLE_TASK_NAME, payload={}, task_id="t").to_dict()
        response = worker.post("/tasks/settlements/settle", json=body)
        assert response.status_code == 400
        assert response.json()["error"] == "missing booking_id"

    def test_unexpected_failure_is_retried(self, worker, store):
        with patch(
            "dari.api.routes.tasks_settlements.settlement.settle_booking",
            side_effect=RuntimeError("db down"),
        ):
            response = worker.post("/tasks/settlements/settle", json=_settle_body("b-1"))
        assert response.status_code == 500
        assert response.json()["ok"] is False


class TestSweepTask:
    def test_sweeps_due_bookings(self, worker, store):
        due = _in_window(store, timedelta(hours=-1))
        later = _in_window(store, timedelta(hours=1))

        response = worker.post("/tasks/settlements/sweep")

        assert response.status_code == 200
        assert response.json() == {"ok": True, "selected": 1, "settled": 1, "skipped": 0, "failed": 0}
        assert store.booking(due.id).status == "settled"
        assert store.booking(later.id).status == "dispute_window"

    def test_limit(self, worker, store):
        for hours in (3, 2, 1):
            _in_window(store, timedelta(hours=-hours))

        response = worker.post("/tasks/settlements/sweep", json={"limit": 2})

        assert response.json()["settled"] == 2

    @pytest.mark.parametrize("limit", [0, -3, "many"])
    def test_invalid_limit(self, worker, limit):
        response = worker.post("/tasks/settlements/sweep", json={"limit": limit})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid limit"

    def test_invalid_json(self, worker):
        response = worker.post(
            "/tasks/settlements/sweep",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400


class TestPaymentCallbacks:
    def test_deposit_captured(self, worker, store):
        booking = store.add_booking(status="awaiting_payment")

        response = worker.post("/tasks/payments/deposit-captured", json={"booking_id": booking.id})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "deposit_paid"
        assert data["payment_status"] == "paid"
        assert store.event_types(booking.id) == ["PAYMENT_CAPTURE_REQUESTED", "BOOKING_DEPOSIT_PAID"]

    def test_deposit_callback_retry_is_idempotent(self, worker, store):
        booking = store.add_booking(status="awaiting_payment")

        worker.post("/tasks/payments/deposit-captured", json={"booking_id": booking.id})
        response = worker.post("/tasks/payments/deposit-captured", json={"booking_id": booking.id})

        assert response.status_code == 200
        assert len(store.events_of("PAYMENT_CAPTURE_REQUESTED")) == 1

    def test_deposit_on_cancelled_booking(self, worker, store):
        booking = store.add_booking(status="cancelled_by_guest")

        response = worker.post("/tasks/payments/deposit-captured", json={"booking_id": booking.id})

        assert response.status_code == 409
        assert response.json()["ok"] is False
        assert response.json()["current_status"] == "cancelled_by_guest"

    def test_authorized_then_held(self, worker, store):
        booking = store.add_booking(status="awaiting_payment")

        first = worker.post("/tasks/payments/authorized", json={"booking_id": booking.id})
        second = worker.post("/tasks/payments/authorized", json={"booking_id": booking.id, "held": True})

        assert first.json()["status"] == "payment_authorized"
        assert second.json()["status"] == "payment_held"

    def test_refund_confirmed(self, worker, store):
        booking = store.add_booking(
            status="cancelled_by_host",
            payment_status="paid",
            refund_amount=Decimal("200"),
            refund_status="pending",
        )

        response = worker.post("/tasks/payments/refund-confirmed", json={"booking_id": booking.id})

        assert response.status_code == 200
        assert response.json()["refund_status"] == "completed"
        assert response.json()["payment_status"] == "refunded"

    def test_unknown_booking(self, worker, store):
        response = worker.post("/tasks/payments/refund-confirmed", json={"booking_id": "missing"})
        assert response.status_code == 404

    def test_missing_booking_id(self, worker):
        response = worker.post("/tasks/payments/authorized", json={"held": True})
        assert response.status_code == 400
