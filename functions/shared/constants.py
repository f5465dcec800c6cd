"""
Shared constants for Premium Sync.
"""

# Platform tags written to user records
PLATFORM_STRIPE = "stripe"
PLATFORM_APPLE = "apple"

# Stripe subscription statuses that grant premium.
# past_due keeps access while Stripe retries the charge (bounded by dunning settings).
STRIPE_PREMIUM_STATUSES = frozenset({"active", "trialing", "past_due"})

# Statuses that mean the customer is paid up - these clear any grace window
STRIPE_SETTLED_STATUSES = frozenset({"active", "trialing"})

# App Store Server Notifications V2 subscription status codes
APPLE_STATUS_ACTIVE = 1
APPLE_STATUS_EXPIRED = 2
APPLE_STATUS_BILLING_RETRY = 3
APPLE_STATUS_BILLING_GRACE_PERIOD = 4
APPLE_STATUS_REVOKED = 5

APPLE_PREMIUM_STATUSES = frozenset({APPLE_STATUS_ACTIVE, APPLE_STATUS_BILLING_GRACE_PERIOD})

# Payment failure grace window (days) before premium should be revoked
DEFAULT_GRACE_PERIOD_DAYS = 3
DEFAULT_BASE_URL = "http://localhost:3000"

# Stripe event types handled by the dispatcher
CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
INVOICE_PAID = "invoice.paid"

# Metadata keys attached at checkout and echoed back by Stripe
METADATA_EMAIL_KEY = "user_email"
METADATA_TOKEN_KEY = "user_token"

# Record fields with their defaults for a previously unknown identity
RECORD_DEFAULTS = {
    "is_premium": False,
    "current_period_end": None,
    "stripe_customer_id": None,
    "stripe_subscription_id": None,
    "grace_until": None,
    "platform": None,
    "apple_original_transaction_id": None,
}

# DynamoDB index names on the users table
EMAIL_INDEX = "email-index"
STRIPE_CUSTOMER_INDEX = "stripe-customer-index"
