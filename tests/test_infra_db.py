"""Tests for database layer."""

import os
import uuid
from datetime import date
from unittest.mock import MagicMock, patch

import psycopg2
import psycopg2.errors
import pytest

from dari.infra.db import get_conn, is_exclusion_violation, txn


class TestGetConnPasswordFallback:
    """DB_PASSWORD fallback in get_conn(), no real DB needed."""

    def test_dsn_without_password_uses_env(self):
        env = {"DATABASE_URL": "dbname=db user=u host=h port=5432", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("dari.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(
                "dbname=db user=u host=h port=5432",
                connect_timeout=10,
                password="from-env",
            )

    def test_dsn_password_wins(self):
        env = {"DATABASE_URL": "dbname=db user=u password=from-dsn host=h", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("dari.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(
                "dbname=db user=u password=from-dsn host=h", connect_timeout=10
            )

    def test_url_without_password_uses_env(self):
        env = {"DATABASE_URL": "postgres://u@h/db", "DB_PASSWORD": "from-env", "DB_CONNECT_TIMEOUT": "3"}
        with patch.dict(os.environ, env, clear=True), \
             patch("dari.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(
                "postgres://u@h/db", connect_timeout=3, password="from-env"
            )

    def test_url_password_wins(self):
        env = {"DATABASE_URL": "postgres://u:p@h/db", "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("dari.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("postgres://u:p@h/db", connect_timeout=10)

    def test_missing_database_url(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL"):
                get_conn()


class TestTxnWithMockConnection:
    def test_commits_on_success(self):
        conn = MagicMock()
        with txn(conn) as cur:
            cur.execute("SELECT 1")
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        conn.close.assert_not_called()

    def test_rolls_back_on_error(self):
        conn = MagicMock()
        with pytest.raises(ValueError):
            with txn(conn):
                raise ValueError("boom")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_closes_owned_connection(self):
        conn = MagicMock()
        with patch("dari.infra.db.get_conn", return_value=conn):
            with txn():
                pass
        conn.close.assert_called_once()


class TestIsExclusionViolation:
    def test_other_errors(self):
        assert not is_exclusion_violation(ValueError("x"))
        assert not is_exclusion_violation(psycopg2.errors.UniqueViolation("dup"))

    def test_exclusion_violation(self):
        assert is_exclusion_violation(psycopg2.errors.ExclusionViolation("conflicting key value"))

    def test_other_constraint_name(self):
        exc = MagicMock(spec=psycopg2.errors.ExclusionViolation)
        exc.diag.constraint_name = "some_other_exclusion"
        assert not is_exclusion_violation(exc)


# Skip integration tests if DATABASE_URL is not set
_skip_no_db = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping DB integration tests",
)


@_skip_no_db
class TestOverlapConstraint:
    """The exclusion constraint rejects overlapping active stays (migrated DB required)."""

    @pytest.fixture
    def property_id(self):
        host_id = f"test-host-{uuid.uuid4().hex[:8]}"
        property_id = f"test-prop-{uuid.uuid4().hex[:8]}"
        with txn() as cur:
            cur.execute(
                "INSERT INTO properties (id, host_id, cancellation_policy) VALUES (%s, %s, 'moderate')",
                (property_id, host_id),
            )
        yield property_id
        with txn() as cur:
            cur.execute("DELETE FROM bookings WHERE property_id = %s", (property_id,))
            cur.execute("DELETE FROM properties WHERE id = %s", (property_id,))

    def _insert(self, property_id: str, check_in: date, check_out: date, status: str = "pending"):
        with txn() as cur:
            cur.execute(
                """
                INSERT INTO bookings (
                    guest_id, host_id, property_id, check_in_date, check_out_date,
                    total_price, deposit_amount, currency, cancellation_policy, status
                )
                SELECT %s, host_id, id, %s, %s, 1000, 200, 'TND', 'moderate', %s
                FROM properties WHERE id = %s
                """,
                (str(uuid.uuid4()), check_in, check_out, status, property_id),
            )

    def test_overlap_rejected(self, property_id):
        self._insert(property_id, date(2030, 1, 1), date(2030, 1, 5))
        with pytest.raises(psycopg2.errors.ExclusionViolation) as exc_info:
            self._insert(property_id, date(2030, 1, 4), date(2030, 1, 8))
        assert is_exclusion_violation(exc_info.value)

    def test_touching_stays_allowed(self, property_id):
        self._insert(property_id, date(2030, 2, 1), date(2030, 2, 5))
        self._insert(property_id, date(2030, 2, 5), date(2030, 2, 8))

    def test_cancelled_booking_frees_dates(self, property_id):
        self._insert(property_id, date(2030, 3, 1), date(2030, 3, 5), status="cancelled_by_guest")
        self._insert(property_id, date(2030, 3, 1), date(2030, 3, 5))
