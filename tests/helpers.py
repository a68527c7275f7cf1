"""Shared test helpers for Dari bookings tests.

Regular functions and classes importable by conftest.py and test modules
(these are NOT fixtures):
- JWT/JWKS builders for auth tests
- FakeStore, an in-memory stand-in for Postgres that the domain modules
  reach through the patched repositories
"""

from __future__ import annotations

import base64
import copy
import dataclasses
import time
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable
from unittest.mock import MagicMock

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from dari.domain.booking_states import INACTIVE_STATUSES, SETTLEABLE_STATUSES
from dari.domain.models import (
    DISPUTE_ACTIVE_STATUSES,
    DISPUTE_OPEN,
    PAYMENT_AUTHORIZED,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    UPDATABLE_COLUMNS,
    Booking,
    Dispute,
    PropertyTerms,
)

NOW = datetime(2026, 7, 1, 12, 0, tzinfo=timezone.utc)

GUEST_ID = "guest-1"
HOST_ID = "host-1"
OTHER_USER_ID = "user-9"
ADMIN_ID = "admin-1"
PROPERTY_ID = "prop-1"


# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------


def _generate_rsa_keypair():
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key, private_key.public_key()


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    numbers = public_key.public_numbers()

    def b64(n: int) -> str:
        raw = n.to_bytes((n.bit_length() + 7) // 8, "big")
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()

    return {
        "keys": [
            {"kty": "RSA", "use": "sig", "alg": "RS256", "kid": kid, "n": b64(numbers.n), "e": b64(numbers.e)}
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = "https://auth.example.com",
    aud: str = "dari-api",
    exp: int | None = None,
    azp: str | None = None,
) -> str:
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if azp:
        payload["azp"] = azp
    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


_PAID_STATUSES = frozenset(
    {
        "deposit_paid",
        "checked_in",
        "checked_out",
        "dispute_window",
        "settlement_pending",
        "disputed",
        "settled",
    }
)
_AUTHORIZED_STATUSES = frozenset({"payment_authorized", "payment_held"})


def _default_payment_status(status: str) -> str:
    if status in _PAID_STATUSES:
        return PAYMENT_PAID
    if status in _AUTHORIZED_STATUSES:
        return PAYMENT_AUTHORIZED
    return PAYMENT_PENDING


def make_booking(**overrides: Any) -> Booking:
    """A confirmed-by-default booking a month out with a 200 deposit.

    Statuses past deposit_paid default to payment_status=paid, and
    payment_authorized/payment_held to payment_status=authorized.
    """
    status = overrides.get("status", "confirmed")
    values: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "guest_id": GUEST_ID,
        "host_id": HOST_ID,
        "property_id": PROPERTY_ID,
        "check_in_date": date(2026, 8, 1),
        "check_out_date": date(2026, 8, 5),
        "total_price": Decimal("1000"),
        "deposit_amount": Decimal("200"),
        "currency": "TND",
        "cancellation_policy": "moderate",
        "status": status,
        "payment_status": _default_payment_status(status),
        "created_at": NOW - timedelta(days=1),
    }
    values.update(overrides)
    return Booking(**values)


class FakeStore:
    """Dict-backed bookings, disputes, conversations and outbox.

    install() swaps db.txn and the repository functions for in-memory
    versions. A txn that raises restores the state it started from, like a
    rollback. before_compare_and_set, when set, runs once right before the
    next booking CAS so tests can slip in a concurrent writer.
    """

    def __init__(self) -> None:
        self.bookings: dict[str, Booking] = {}
        self.properties: dict[str, PropertyTerms] = {}
        self.disputes: dict[str, Dispute] = {}
        self.conversations: dict[tuple[str, str, str], dict[str, str]] = {}
        self.events: list[dict[str, Any]] = []
        self.before_compare_and_set: Callable[[], None] | None = None
        self.insert_error: Exception | None = None
        self._committed_elsewhere: dict[str, Booking] = {}
        self.add_property()

    # -- seeding ----------------------------------------------------------

    def add_property(
        self,
        property_id: str = PROPERTY_ID,
        host_id: str = HOST_ID,
        cancellation_policy: str | None = "moderate",
        minimum_stay: int = 1,
        currency: str | None = "TND",
    ) -> PropertyTerms:
        terms = PropertyTerms(
            id=property_id,
            host_id=host_id,
            cancellation_policy=cancellation_policy,
            minimum_stay=minimum_stay,
            currency=currency,
        )
        self.properties[property_id] = terms
        return terms

    def add_booking(self, **overrides: Any) -> Booking:
        booking = make_booking(**overrides)
        self.bookings[booking.id] = booking
        return copy.deepcopy(booking)

    def set_status(self, booking_id: str, status: str, **changes: Any) -> None:
        """Simulate another writer committing a change.

        The change survives a rollback of the transaction it happened in.
        """
        current = self.bookings[booking_id]
        updated = dataclasses.replace(
            current, status=status, version=current.version + 1, **changes
        )
        self.bookings[booking_id] = updated
        self._committed_elsewhere[booking_id] = updated

    def booking(self, booking_id: str) -> Booking:
        return self.bookings[booking_id]

    def event_types(self, booking_id: str | None = None) -> list[str]:
        return [
            e["event_type"]
            for e in self.events
            if booking_id is None or e["booking_id"] == booking_id
        ]

    def events_of(self, event_type: str) -> list[dict[str, Any]]:
        return [e for e in self.events if e["event_type"] == event_type]

    # -- db ---------------------------------------------------------------

    def _snapshot(self) -> tuple:
        return copy.deepcopy(
            (self.bookings, self.disputes, self.conversations, self.events)
        )

    @contextmanager
    def txn(self, conn=None):
        snapshot = self._snapshot()
        self._committed_elsewhere = {}
        try:
            yield MagicMock(name="cursor")
        except Exception:
            self.bookings, self.disputes, self.conversations, self.events = snapshot
            self.bookings.update(self._committed_elsewhere)
            raise

    # -- bookings repository ----------------------------------------------

    def get_booking(self, cur, booking_id: str) -> Booking | None:
        booking = self.bookings.get(booking_id)
        return copy.deepcopy(booking) if booking else None

    def insert_booking(self, cur, booking: Booking) -> Booking:
        if self.insert_error is not None:
            raise self.insert_error
        stored = dataclasses.replace(booking, created_at=NOW, updated_at=NOW)
        self.bookings[stored.id] = stored
        return copy.deepcopy(stored)

    def find_overlapping_booking(
        self,
        cur,
        *,
        property_id: str,
        check_in: date,
        check_out: date,
        exclude_booking_id: str | None = None,
    ) -> str | None:
        for b in self.bookings.values():
            if b.property_id != property_id or b.id == exclude_booking_id:
                continue
            if b.status in INACTIVE_STATUSES:
                continue
            if check_in < b.check_out_date and check_out > b.check_in_date:
                return b.id
        return None

    def compare_and_set(
        self,
        cur,
        booking_id: str,
        *,
        expected_status: str,
        expected_version: int,
        changes: dict[str, Any],
    ) -> Booking | None:
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update booking columns: {sorted(unknown)}")

        if self.before_compare_and_set is not None:
            hook, self.before_compare_and_set = self.before_compare_and_set, None
            hook()

        current = self.bookings.get(booking_id)
        if current is None or current.status != expected_status or current.version != expected_version:
            return None
        updated = dataclasses.replace(
            current, **changes, version=current.version + 1, updated_at=NOW
        )
        self.bookings[booking_id] = updated
        return copy.deepcopy(updated)

    def list_due_for_settlement(self, cur, *, now: datetime, limit: int) -> list[str]:
        due = [
            b
            for b in self.bookings.values()
            if b.status in SETTLEABLE_STATUSES
            and b.settlement_due_at is not None
            and b.settlement_due_at <= now
        ]
        due.sort(key=lambda b: b.settlement_due_at)
        return [b.id for b in due[:limit]]

    # -- other repositories -----------------------------------------------

    def get_property_terms(self, cur, property_id: str) -> PropertyTerms | None:
        return self.properties.get(property_id)

    def insert_dispute(self, cur, *, booking_id, reason_code, description, filed_by) -> Dispute:
        dispute = Dispute(
            id=str(uuid.uuid4()),
            booking_id=booking_id,
            status=DISPUTE_OPEN,
            reason_code=reason_code,
            description=description,
            filed_by=filed_by,
            created_at=NOW,
        )
        self.disputes[dispute.id] = dispute
        return copy.deepcopy(dispute)

    def get_active_dispute(self, cur, booking_id: str) -> Dispute | None:
        for dispute in self.disputes.values():
            if dispute.booking_id == booking_id and dispute.status in DISPUTE_ACTIVE_STATUSES:
                return copy.deepcopy(dispute)
        return None

    def update_dispute(self, cur, dispute_id: str, *, expected_status: str, changes: dict) -> Dispute | None:
        current = self.disputes.get(dispute_id)
        if current is None or current.status != expected_status:
            return None
        updated = dataclasses.replace(current, **changes)
        self.disputes[dispute_id] = updated
        return copy.deepcopy(updated)

    def upsert_booking_conversation(self, cur, *, property_id, host_id, guest_id, booking_id) -> str:
        key = (property_id, host_id, guest_id)
        conversation = self.conversations.setdefault(key, {"id": str(uuid.uuid4())})
        conversation["booking_id"] = booking_id
        return conversation["id"]

    def emit_booking_event(self, cur, booking: Booking, event_type: str, *, correlation_id=None, **payload) -> int:
        self.events.append(
            {
                "event_type": event_type,
                "booking_id": booking.id,
                "status": booking.status,
                "correlation_id": correlation_id,
                "payload": payload,
            }
        )
        return len(self.events)

    # -- wiring -------------------------------------------------------------

    def install(self, monkeypatch) -> "FakeStore":
        from dari.infra import db
        from dari.infra.repositories import (
            bookings_repository,
            conversations_repository,
            disputes_repository,
            outbox_repository,
            properties_repository,
        )

        monkeypatch.setattr(db, "txn", self.txn)
        for name in (
            "get_booking",
            "insert_booking",
            "find_overlapping_booking",
            "compare_and_set",
            "list_due_for_settlement",
        ):
            monkeypatch.setattr(bookings_repository, name, getattr(self, name))
        monkeypatch.setattr(properties_repository, "get_property_terms", self.get_property_terms)
        for name in ("insert_dispute", "get_active_dispute", "update_dispute"):
            monkeypatch.setattr(disputes_repository, name, getattr(self, name))
        monkeypatch.setattr(
            conversations_repository,
            "upsert_booking_conversation",
            self.upsert_booking_conversation,
        )
        monkeypatch.setattr(outbox_repository, "emit_booking_event", self.emit_booking_event)
        return self
