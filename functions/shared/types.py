"""
Shared type definitions for billing records.
"""

from typing import Optional, TypedDict


class UserBillingRecord(TypedDict):
    """Billing state for one user identity.

    Timestamps are ISO-8601 UTC strings. ``identity`` is the lower-cased email
    for web users or the opaque app account token for mobile users.
    """

    identity: str
    is_premium: bool
    current_period_end: Optional[str]
    stripe_customer_id: Optional[str]
    stripe_subscription_id: Optional[str]
    grace_until: Optional[str]
    platform: Optional[str]
    apple_original_transaction_id: Optional[str]


class BillingPatch(TypedDict, total=False):
    """Partial update. Only named fields change; ``None`` clears a field."""

    is_premium: bool
    current_period_end: Optional[str]
    stripe_customer_id: Optional[str]
    stripe_subscription_id: Optional[str]
    grace_until: Optional[str]
    platform: str
    apple_original_transaction_id: Optional[str]
