"""Shared pytest fixtures for Dari bookings tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from helpers import FakeStore  # noqa: E402

_ENV_VARS = (
    "DISPUTE_WINDOW_HOURS",
    "DEPOSIT_RATE",
    "DEFAULT_CURRENCY",
    "DEFAULT_CANCELLATION_POLICY",
    "SETTLEMENT_SWEEP_INTERVAL_SECONDS",
    "SETTLEMENT_SWEEP_BATCH_SIZE",
    "SETTLEMENT_SWEEPER_ENABLED",
    "TASKS_BACKEND",
    "TASKS_OIDC_AUDIENCE",
    "TASKS_OIDC_SERVICE_ACCOUNT",
    "INTERNAL_TASK_SECRET",
    "APP_ROLE",
)


@pytest.fixture(autouse=True)
def _reset_oidc_jwks_cache():
    """Reset global JWKS cache to avoid cross-test contamination.

    A JWKS cached by one test would otherwise be served to the next one,
    which signs its tokens with a different key.
    """
    import dari.api.auth as auth_module

    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0
    yield
    auth_module._jwks_cache = None
    auth_module._jwks_cache_time = 0


@pytest.fixture(autouse=True)
def _default_environment(monkeypatch):
    """Every test starts from default settings and no task credentials."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store(monkeypatch) -> FakeStore:
    """In-memory database wired into db.txn and the repositories."""
    return FakeStore().install(monkeypatch)
