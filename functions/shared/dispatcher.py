"""
Event dispatcher: one reconciliation action per subscription lifecycle event.

Every branch is idempotent. Patches are last-write-wins on the fields they
touch, and the payment-failure grace window is only set when absent, so a
redelivered event converges to the same record state.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .constants import DEFAULT_GRACE_PERIOD_DAYS, PLATFORM_APPLE, PLATFORM_STRIPE, STRIPE_SETTLED_STATUSES
from .events import (
    AppleSubscriptionNotification,
    BillingEvent,
    CheckoutCompleted,
    InvoicePaid,
    PaymentFailed,
    SubscriptionChanged,
    SubscriptionDeleted,
    UnhandledEvent,
    get_field,
    subscription_period_end,
)
from .identity import Identity
from .status_translator import translate_status

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Outcome of dispatching one event."""

    action: str
    identity: Optional[Identity] = None
    patch: dict = field(default_factory=dict)
    applied: bool = False

    @property
    def resolved(self) -> bool:
        return self.identity is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventDispatcher:
    """Route typed billing events to their reconciliation action."""

    def __init__(
        self,
        resolver,
        writer,
        stripe_client,
        grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.resolver = resolver
        self.writer = writer
        self.stripe_client = stripe_client
        self.grace_period_days = grace_period_days
        self.clock = clock

        self._handlers = {
            CheckoutCompleted: self._handle_checkout_completed,
            SubscriptionChanged: self._handle_subscription_changed,
            SubscriptionDeleted: self._handle_subscription_deleted,
            PaymentFailed: self._handle_payment_failed,
            InvoicePaid: self._handle_invoice_paid,
            AppleSubscriptionNotification: self._handle_apple_notification,
        }

    def dispatch(self, event: BillingEvent) -> DispatchResult:
        handler = self._handlers.get(type(event))
        if handler is None:
            event_type = event.event_type if isinstance(event, UnhandledEvent) else type(event).__name__
            logger.info(f"Unhandled event type: {event_type}")
            return DispatchResult(action="ignored")
        return handler(event)

    # -- helpers --

    def _apply(self, action: str, identity: Identity, patch: dict, set_if_absent=()) -> DispatchResult:
        applied = self.writer.apply(identity, patch, set_if_absent)
        return DispatchResult(action=action, identity=identity, patch=patch, applied=applied)

    def _dropped(self, action: str, reason: str) -> DispatchResult:
        logger.info(f"Dropping {action} event: {reason}")
        return DispatchResult(action="dropped")

    def _subscription_patch(self, status, period_end, customer_id, subscription_id) -> dict:
        patch = translate_status(status, period_end, PLATFORM_STRIPE, now=self.clock())
        patch["platform"] = PLATFORM_STRIPE
        if customer_id:
            patch["stripe_customer_id"] = customer_id
        if subscription_id:
            patch["stripe_subscription_id"] = subscription_id
        if status in STRIPE_SETTLED_STATUSES:
            patch["grace_until"] = None
        return patch

    # -- handlers --

    def _handle_checkout_completed(self, event: CheckoutCompleted) -> DispatchResult:
        """Checkout finished: record the customer and, if subscribed, the subscription state."""
        identity = self.resolver.resolve(event.hints)
        if identity is None:
            return self._dropped("checkout", f"no identity for session {event.session_id}")

        logger.info(f"Checkout completed for {identity} (subscription={event.subscription_id})")

        if not event.subscription_id:
            if not event.customer_id:
                return self._dropped("checkout", f"session {event.session_id} has neither customer nor subscription")
            # Premium is decided by a later subscription event
            return self._apply("checkout_customer_only", identity, {"stripe_customer_id": event.customer_id})

        subscription = self.stripe_client.subscriptions.retrieve(event.subscription_id)
        customer_id = event.customer_id or get_field(subscription, "customer")
        patch = self._subscription_patch(
            get_field(subscription, "status"),
            subscription_period_end(subscription),
            customer_id if isinstance(customer_id, str) else None,
            event.subscription_id,
        )
        return self._apply("checkout_subscription", identity, patch)

    def _handle_subscription_changed(self, event: SubscriptionChanged) -> DispatchResult:
        identity = self.resolver.resolve(event.hints)
        if identity is None:
            return self._dropped(event.event_type, f"customer {event.customer_id} is unknown")

        logger.info(f"Subscription {event.subscription_id} for {identity}: status={event.status}")
        patch = self._subscription_patch(
            event.status, event.current_period_end, event.customer_id, event.subscription_id
        )
        return self._apply("subscription_changed", identity, patch)

    def _handle_subscription_deleted(self, event: SubscriptionDeleted) -> DispatchResult:
        """Subscription ended: Stripe is the source of truth, revoke premium."""
        identity = self.resolver.resolve(event.hints)
        if identity is None:
            return self._dropped("subscription_deleted", f"customer {event.customer_id} is unknown")

        logger.info(f"Subscription {event.subscription_id} deleted for {identity}, revoking premium")
        patch = {
            "is_premium": False,
            "stripe_subscription_id": None,
            "current_period_end": None,
            "platform": PLATFORM_STRIPE,
        }
        return self._apply("subscription_deleted", identity, patch)

    def _handle_payment_failed(self, event: PaymentFailed) -> DispatchResult:
        """Start the grace window. Premium itself is left for the subscription events."""
        identity = self.resolver.resolve(event.hints)
        if identity is None:
            return self._dropped("payment_failed", f"customer {event.customer_id} is unknown")

        grace_until = self.clock() + timedelta(days=self.grace_period_days)
        logger.warning(
            f"Payment failed for {identity} (attempt {event.attempt_count}), "
            f"grace window until {grace_until.isoformat()} unless already started"
        )
        return self._apply(
            "payment_failed",
            identity,
            {"grace_until": grace_until.isoformat()},
            set_if_absent=("grace_until",),
        )

    def _handle_invoice_paid(self, event: InvoicePaid) -> DispatchResult:
        identity = self.resolver.resolve(event.hints)
        if identity is None:
            return self._dropped("invoice_paid", f"customer {event.customer_id} is unknown")
        return self._apply("invoice_paid", identity, {"grace_until": None})

    def _handle_apple_notification(self, event: AppleSubscriptionNotification) -> DispatchResult:
        identity = self.resolver.resolve(event.hints, token_only=True)
        if identity is None:
            return self._dropped("apple_notification", f"{event.notification_type} carries no appAccountToken")

        if event.status is None:
            return self._dropped("apple_notification", f"{event.notification_type} carries no subscription status")

        logger.info(
            f"Apple {event.notification_type}/{event.subtype or '-'} for {identity}: status={event.status}"
        )
        patch = translate_status(event.status, event.expires_date, PLATFORM_APPLE, now=self.clock())
        patch["platform"] = PLATFORM_APPLE
        if event.original_transaction_id:
            patch["apple_original_transaction_id"] = event.original_transaction_id
        return self._apply("apple_notification", identity, patch)
