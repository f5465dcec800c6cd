"""
Tests for the canonical premium-status mapping.
"""

from datetime import datetime, timedelta, timezone

import pytest

from shared.status_translator import is_premium_status, period_end_to_datetime, translate_status

NOW = datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc)
FUTURE_SECONDS = int((NOW + timedelta(days=30)).timestamp())
PAST_SECONDS = int((NOW - timedelta(days=1)).timestamp())


class TestStripeStatuses:
    """Stripe subscription status strings."""

    @pytest.mark.parametrize("status", ["active", "trialing", "past_due"])
    def test_premium_statuses_with_future_period(self, status):
        result = translate_status(status, FUTURE_SECONDS, "stripe", now=NOW)

        assert result["is_premium"] is True
        assert result["current_period_end"] == datetime.fromtimestamp(FUTURE_SECONDS, tz=timezone.utc).isoformat()

    @pytest.mark.parametrize(
        "status",
        ["canceled", "unpaid", "incomplete", "incomplete_expired", "paused", "something_new", "", None],
    )
    def test_non_premium_statuses(self, status):
        """Unknown and terminal statuses never grant premium."""
        result = translate_status(status, FUTURE_SECONDS, "stripe", now=NOW)

        assert result["is_premium"] is False

    def test_premium_status_with_past_period_is_not_premium(self):
        result = translate_status("active", PAST_SECONDS, "stripe", now=NOW)

        assert result["is_premium"] is False
        assert result["current_period_end"] is not None

    def test_premium_status_without_period_is_not_premium(self):
        result = translate_status("active", None, "stripe", now=NOW)

        assert result == {"is_premium": False, "current_period_end": None}

    def test_status_is_case_insensitive(self):
        assert is_premium_status("ACTIVE", "stripe") is True


class TestAppleStatuses:
    """App Store subscription status codes with millisecond expiry."""

    @pytest.mark.parametrize("status", [1, 4, "1"])
    def test_premium_codes(self, status):
        expires_ms = FUTURE_SECONDS * 1000

        result = translate_status(status, expires_ms, "apple", now=NOW)

        assert result["is_premium"] is True
        assert result["current_period_end"] == datetime.fromtimestamp(FUTURE_SECONDS, tz=timezone.utc).isoformat()

    @pytest.mark.parametrize("status", [2, 3, 5, 99, None, "not-a-code"])
    def test_non_premium_codes(self, status):
        result = translate_status(status, FUTURE_SECONDS * 1000, "apple", now=NOW)

        assert result["is_premium"] is False

    def test_apple_period_is_milliseconds(self):
        """A millisecond value must not be read as seconds (which would be far future)."""
        parsed = period_end_to_datetime(FUTURE_SECONDS * 1000, "apple")

        assert parsed == datetime.fromtimestamp(FUTURE_SECONDS, tz=timezone.utc)


class TestPeriodEndParsing:
    def test_iso_string(self):
        parsed = period_end_to_datetime("2026-11-01T00:00:00Z")

        assert parsed == datetime(2026, 11, 1, tzinfo=timezone.utc)

    def test_naive_datetime_is_utc(self):
        parsed = period_end_to_datetime(datetime(2026, 11, 1))

        assert parsed.tzinfo is not None

    def test_numeric_string(self):
        parsed = period_end_to_datetime(str(FUTURE_SECONDS))

        assert parsed == datetime.fromtimestamp(FUTURE_SECONDS, tz=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "next tuesday"])
    def test_unparseable_returns_none(self, value):
        assert period_end_to_datetime(value) is None
