"""
Typed provider events.

Verified Stripe events and Apple notifications are parsed once, at the edge,
into one frozen dataclass per event type. The dispatcher only ever sees these.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .constants import (
    CHECKOUT_COMPLETED,
    INVOICE_PAID,
    INVOICE_PAYMENT_FAILED,
    METADATA_EMAIL_KEY,
    METADATA_TOKEN_KEY,
    SUBSCRIPTION_CREATED,
    SUBSCRIPTION_DELETED,
    SUBSCRIPTION_UPDATED,
)
from .identity import CorrelationHints


def get_field(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a dict, StripeObject or attribute-style model."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        value = getattr(obj, key, default)
    return default if value is None else value


def _object_id(value: Any) -> Optional[str]:
    """Stripe expandable fields arrive either as an id or as the expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    return get_field(value, "id")


def _as_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _metadata(obj: Any) -> dict:
    metadata = get_field(obj, "metadata", {}) or {}
    if not isinstance(metadata, dict) and hasattr(metadata, "to_dict"):
        metadata = metadata.to_dict()
    return metadata if isinstance(metadata, dict) else {}


def subscription_period_end(subscription: Any) -> Optional[int]:
    """Current period end of a subscription (epoch seconds).

    Newer Stripe API versions only carry the period on subscription items.
    """
    period_end = get_field(subscription, "current_period_end")
    if period_end:
        return period_end
    items = get_field(get_field(subscription, "items", {}), "data", []) or []
    for item in items:
        period_end = get_field(item, "current_period_end")
        if period_end:
            return period_end
    return None


def hints_from_object(obj: Any, include_email: bool = True) -> CorrelationHints:
    """Collect correlation data from a Stripe object."""
    metadata = _metadata(obj)
    token = get_field(obj, "client_reference_id") or metadata.get(METADATA_TOKEN_KEY)

    email = None
    if include_email:
        customer_details = get_field(obj, "customer_details", {}) or {}
        email = metadata.get(METADATA_EMAIL_KEY) or get_field(customer_details, "email") or get_field(obj, "customer_email")

    return CorrelationHints(
        token=token or None,
        email=email or None,
        customer_id=_object_id(get_field(obj, "customer")),
    )


@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: str
    session_id: Optional[str]
    customer_id: Optional[str]
    subscription_id: Optional[str]
    hints: CorrelationHints = field(default_factory=CorrelationHints)


@dataclass(frozen=True)
class SubscriptionChanged:
    """customer.subscription.created / customer.subscription.updated"""

    event_id: str
    event_type: str
    subscription_id: Optional[str]
    customer_id: Optional[str]
    status: Optional[str]
    current_period_end: Optional[int]
    hints: CorrelationHints = field(default_factory=CorrelationHints)


@dataclass(frozen=True)
class SubscriptionDeleted:
    event_id: str
    subscription_id: Optional[str]
    customer_id: Optional[str]
    hints: CorrelationHints = field(default_factory=CorrelationHints)


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str
    invoice_id: Optional[str]
    customer_id: Optional[str]
    attempt_count: int = 1
    hints: CorrelationHints = field(default_factory=CorrelationHints)


@dataclass(frozen=True)
class InvoicePaid:
    event_id: str
    invoice_id: Optional[str]
    customer_id: Optional[str]
    hints: CorrelationHints = field(default_factory=CorrelationHints)


@dataclass(frozen=True)
class AppleSubscriptionNotification:
    notification_uuid: Optional[str]
    notification_type: Optional[str]
    subtype: Optional[str]
    status: Optional[int]
    app_account_token: Optional[str]
    expires_date: Optional[int]
    original_transaction_id: Optional[str]

    @property
    def hints(self) -> CorrelationHints:
        return CorrelationHints(token=self.app_account_token)


@dataclass(frozen=True)
class UnhandledEvent:
    event_id: str
    event_type: str


StripeBillingEvent = Union[
    CheckoutCompleted,
    SubscriptionChanged,
    SubscriptionDeleted,
    PaymentFailed,
    InvoicePaid,
    UnhandledEvent,
]

BillingEvent = Union[StripeBillingEvent, AppleSubscriptionNotification]


def checkout_from_session(session: Any, event_id: str = "") -> CheckoutCompleted:
    """Build the checkout-completed variant from a Checkout Session object."""
    return CheckoutCompleted(
        event_id=event_id,
        session_id=get_field(session, "id"),
        customer_id=_object_id(get_field(session, "customer")),
        subscription_id=_object_id(get_field(session, "subscription")),
        hints=hints_from_object(session),
    )


def parse_stripe_event(event: Any) -> StripeBillingEvent:
    """Turn a verified Stripe event into its typed variant."""
    event_id = get_field(event, "id", "")
    event_type = get_field(event, "type", "")
    obj = get_field(get_field(event, "data", {}), "object", {}) or {}

    if event_type == CHECKOUT_COMPLETED:
        return checkout_from_session(obj, event_id)

    if event_type in (SUBSCRIPTION_CREATED, SUBSCRIPTION_UPDATED):
        return SubscriptionChanged(
            event_id=event_id,
            event_type=event_type,
            subscription_id=get_field(obj, "id"),
            customer_id=_object_id(get_field(obj, "customer")),
            status=get_field(obj, "status"),
            current_period_end=subscription_period_end(obj),
            hints=hints_from_object(obj, include_email=False),
        )

    if event_type == SUBSCRIPTION_DELETED:
        return SubscriptionDeleted(
            event_id=event_id,
            subscription_id=get_field(obj, "id"),
            customer_id=_object_id(get_field(obj, "customer")),
            hints=hints_from_object(obj, include_email=False),
        )

    if event_type == INVOICE_PAYMENT_FAILED:
        return PaymentFailed(
            event_id=event_id,
            invoice_id=get_field(obj, "id"),
            customer_id=_object_id(get_field(obj, "customer")),
            attempt_count=_as_int(get_field(obj, "attempt_count"), 1),
            hints=CorrelationHints(customer_id=_object_id(get_field(obj, "customer"))),
        )

    if event_type == INVOICE_PAID:
        return InvoicePaid(
            event_id=event_id,
            invoice_id=get_field(obj, "id"),
            customer_id=_object_id(get_field(obj, "customer")),
            hints=CorrelationHints(customer_id=_object_id(get_field(obj, "customer"))),
        )

    return UnhandledEvent(event_id=event_id, event_type=event_type)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def parse_apple_notification(notification: Any, transaction: Any) -> AppleSubscriptionNotification:
    """Flatten a verified App Store notification and its signed transaction."""
    data = get_field(notification, "data")

    status = get_field(data, "rawStatus")
    if status is None:
        status = _enum_value(get_field(data, "status"))

    notification_type = get_field(notification, "rawNotificationType") or _enum_value(get_field(notification, "notificationType"))
    subtype = get_field(notification, "rawSubtype") or _enum_value(get_field(notification, "subtype"))

    app_account_token = get_field(transaction, "appAccountToken")

    return AppleSubscriptionNotification(
        notification_uuid=get_field(notification, "notificationUUID"),
        notification_type=notification_type,
        subtype=subtype,
        status=_as_int(status),
        app_account_token=str(app_account_token) if app_account_token else None,
        expires_date=get_field(transaction, "expiresDate"),
        original_transaction_id=get_field(transaction, "originalTransactionId"),
    )
