"""
Canonical premium-status mapping.

Every event handler and provider adapter goes through ``translate_status`` so
that Stripe subscription statuses and Apple subscription status codes are
interpreted in exactly one place.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from .constants import APPLE_PREMIUM_STATUSES, PLATFORM_APPLE, PLATFORM_STRIPE, STRIPE_PREMIUM_STATUSES

logger = logging.getLogger(__name__)

# Units each provider uses for period-end timestamps
_PERIOD_END_DIVISORS = {
    PLATFORM_STRIPE: 1,  # epoch seconds
    PLATFORM_APPLE: 1000,  # epoch milliseconds
}


def period_end_to_datetime(value: Any, provider: str = PLATFORM_STRIPE) -> Optional[datetime]:
    """Convert a provider-native period end into an aware UTC datetime.

    Accepts epoch numbers in the provider's unit, ISO-8601 strings and
    datetimes. Returns None for missing or unparseable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            try:
                value = float(value)
            except ValueError:
                logger.warning(f"Unparseable period end: {value!r}")
                return None
        else:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    try:
        seconds = float(value) / _PERIOD_END_DIVISORS.get(provider, 1)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        logger.warning(f"Unparseable period end: {value!r}")
        return None


def is_premium_status(status: Any, provider: str = PLATFORM_STRIPE) -> bool:
    """Whether a provider status value confers premium. Unknown values never do."""
    if status is None:
        return False
    if provider == PLATFORM_APPLE:
        try:
            return int(status) in APPLE_PREMIUM_STATUSES
        except (TypeError, ValueError):
            return False
    return str(status).strip().lower() in STRIPE_PREMIUM_STATUSES


def translate_status(
    status: Any,
    period_end: Any,
    provider: str = PLATFORM_STRIPE,
    now: Optional[datetime] = None,
) -> dict:
    """
    Map a provider status and period end to the canonical premium state.

    Args:
        status: Stripe subscription status string or Apple status code
        period_end: Period end in provider-native units
        provider: "stripe" or "apple"
        now: Reference time (defaults to current UTC time)

    Returns:
        {"is_premium": bool, "current_period_end": ISO-8601 string or None}

    A premium-conferring status only yields ``is_premium=True`` when the period
    end is known and still in the future.
    """
    now = now or datetime.now(timezone.utc)
    period_end_dt = period_end_to_datetime(period_end, provider)

    premium = is_premium_status(status, provider)
    if premium and (period_end_dt is None or period_end_dt <= now):
        logger.info(f"Status {status!r} is premium but period end {period_end!r} is not in the future")
        premium = False

    return {
        "is_premium": premium,
        "current_period_end": period_end_dt.isoformat() if period_end_dt else None,
    }
