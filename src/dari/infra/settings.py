"""Booking lifecycle settings.

All knobs come from environment variables. Values are read on every call to
get_booking_settings() so tests can monkeypatch the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class BookingSettings:
    """Settings for the booking state machine and settlement sweep.

    Attributes:
        dispute_window_hours: Hours after checkout during which a guest may
            file a dispute and funds stay held. 0 disables the window.
        deposit_rate: Fraction of total_price taken as deposit by default.
        default_currency: Currency used when a property does not set one.
        default_cancellation_policy: Policy used when a property has none.
        sweep_interval_seconds: Pause between settlement sweeps.
        sweep_batch_size: Max bookings settled per sweep.
        sweeper_enabled: Start the in-process sweeper with the worker app.
    """

    dispute_window_hours: int = 48
    deposit_rate: Decimal = Decimal("0.20")
    default_currency: str = "TND"
    default_cancellation_policy: str = "moderate"
    sweep_interval_seconds: int = 300
    sweep_batch_size: int = 100
    sweeper_enabled: bool = False

    @property
    def dispute_window(self) -> timedelta:
        return timedelta(hours=self.dispute_window_hours)


def _int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _rate_env(name: str, default: Decimal) -> Decimal:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"{name} must be a decimal, got {raw!r}")
    if not (Decimal("0") < value <= Decimal("1")):
        raise ValueError(f"{name} must be in (0, 1], got {value}")
    return value


def get_booking_settings() -> BookingSettings:
    """Load booking settings from the environment.

    Raises:
        ValueError: If a variable is set but malformed or out of range.
    """
    defaults = BookingSettings()
    return BookingSettings(
        dispute_window_hours=_int_env("DISPUTE_WINDOW_HOURS", defaults.dispute_window_hours),
        deposit_rate=_rate_env("DEPOSIT_RATE", defaults.deposit_rate),
        default_currency=os.environ.get("DEFAULT_CURRENCY") or defaults.default_currency,
        default_cancellation_policy=(
            os.environ.get("DEFAULT_CANCELLATION_POLICY") or defaults.default_cancellation_policy
        ),
        sweep_interval_seconds=_int_env(
            "SETTLEMENT_SWEEP_INTERVAL_SECONDS", defaults.sweep_interval_seconds, minimum=1
        ),
        sweep_batch_size=_int_env(
            "SETTLEMENT_SWEEP_BATCH_SIZE", defaults.sweep_batch_size, minimum=1
        ),
        sweeper_enabled=os.environ.get("SETTLEMENT_SWEEPER_ENABLED", "").lower() in _TRUTHY,
    )
