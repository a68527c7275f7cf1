"""Tests for booking settings loaded from the environment."""

from datetime import timedelta
from decimal import Decimal

import pytest

from dari.infra.settings import BookingSettings, get_booking_settings


class TestDefaults:
    def test_defaults(self):
        settings = get_booking_settings()

        assert settings == BookingSettings()
        assert settings.dispute_window_hours == 48
        assert settings.deposit_rate == Decimal("0.20")
        assert settings.default_currency == "TND"
        assert settings.default_cancellation_policy == "moderate"
        assert settings.sweep_batch_size == 100
        assert settings.sweeper_enabled is False

    def test_dispute_window(self):
        assert get_booking_settings().dispute_window == timedelta(hours=48)


class TestOverrides:
    def test_env_values(self, monkeypatch):
        monkeypatch.setenv("DISPUTE_WINDOW_HOURS", "72")
        monkeypatch.setenv("DEPOSIT_RATE", "0.5")
        monkeypatch.setenv("DEFAULT_CURRENCY", "EUR")
        monkeypatch.setenv("DEFAULT_CANCELLATION_POLICY", "strict")
        monkeypatch.setenv("SETTLEMENT_SWEEP_INTERVAL_SECONDS", "60")
        monkeypatch.setenv("SETTLEMENT_SWEEP_BATCH_SIZE", "10")
        monkeypatch.setenv("SETTLEMENT_SWEEPER_ENABLED", "yes")

        settings = get_booking_settings()

        assert settings.dispute_window == timedelta(hours=72)
        assert settings.deposit_rate == Decimal("0.5")
        assert settings.default_currency == "EUR"
        assert settings.default_cancellation_policy == "strict"
        assert settings.sweep_interval_seconds == 60
        assert settings.sweep_batch_size == 10
        assert settings.sweeper_enabled is True

    def test_zero_window_allowed(self, monkeypatch):
        monkeypatch.setenv("DISPUTE_WINDOW_HOURS", "0")
        assert get_booking_settings().dispute_window == timedelta(0)

    def test_blank_means_default(self, monkeypatch):
        monkeypatch.setenv("DISPUTE_WINDOW_HOURS", "  ")
        assert get_booking_settings().dispute_window_hours == 48


class TestInvalidValues:
    @pytest.mark.parametrize(
        "name, value, message",
        [
            ("DISPUTE_WINDOW_HOURS", "two days", "must be an integer"),
            ("DISPUTE_WINDOW_HOURS", "-1", "must be >= 0"),
            ("SETTLEMENT_SWEEP_BATCH_SIZE", "0", "must be >= 1"),
            ("DEPOSIT_RATE", "lots", "must be a decimal"),
            ("DEPOSIT_RATE", "0", r"must be in \(0, 1\]"),
            ("DEPOSIT_RATE", "1.5", r"must be in \(0, 1\]"),
        ],
    )
    def test_rejected(self, monkeypatch, name, value, message):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValueError, match=message):
            get_booking_settings()
