"""
Explicit wiring of Premium Sync components.

Clients are built once from ``Settings`` and handed to each component at
construction time. Handler modules keep one service per Lambda container;
its Stripe components are rebuilt whenever the Stripe secrets change.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

import stripe

from .aws_clients import get_dynamodb
from .billing_utils import BillingWriter, get_stripe_secrets
from .config import Settings
from .dispatcher import EventDispatcher
from .identity import IdentityResolver
from .local_cache import LocalCacheStore
from .provisioning import CustomerProvisioner
from .user_store import UserRecordStore
from .webhook_verifier import AppleNotificationVerifier, StripeWebhookVerifier

logger = logging.getLogger(__name__)


@dataclass
class BillingService:
    settings: Settings
    stripe_client: Optional[stripe.StripeClient]
    store: UserRecordStore
    cache: LocalCacheStore
    writer: BillingWriter
    resolver: IdentityResolver
    dispatcher: EventDispatcher
    provisioner: Optional[CustomerProvisioner]
    stripe_verifier: Optional[StripeWebhookVerifier]
    apple_verifier: Optional[AppleNotificationVerifier]
    stripe_api_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None


def build_service(
    settings: Optional[Settings] = None,
    table=None,
    stripe_client=None,
    apple_verifier=None,
) -> BillingService:
    """
    Construct every component from configuration.

    Missing required options are logged as warnings; the components that need
    them are left as None and the handlers using them answer 500.
    """
    settings = settings or Settings.from_env()
    for name in settings.missing_required():
        logger.warning(f"Configuration option {name} is not set")

    if table is None:
        table = get_dynamodb(settings.dynamodb_endpoint_url).Table(settings.users_table)

    store = UserRecordStore(table)
    cache = LocalCacheStore(settings.local_cache_path)
    writer = BillingWriter(store, cache)
    resolver = IdentityResolver(store, cache)

    if apple_verifier is None:
        apple_verifier = AppleNotificationVerifier.from_settings(settings)

    service = BillingService(
        settings=settings,
        stripe_client=None,
        store=store,
        cache=cache,
        writer=writer,
        resolver=resolver,
        dispatcher=EventDispatcher(resolver, writer, None, grace_period_days=settings.grace_period_days),
        provisioner=None,
        stripe_verifier=None,
        apple_verifier=apple_verifier,
    )
    api_key, webhook_secret = get_stripe_secrets(settings)
    return _with_stripe(service, api_key, webhook_secret, stripe_client)


def _with_stripe(service: BillingService, api_key, webhook_secret, stripe_client=None) -> BillingService:
    """Copy of the service with its Stripe-dependent components built from these secrets."""
    if stripe_client is None and api_key:
        stripe_client = stripe.StripeClient(api_key)

    return replace(
        service,
        stripe_client=stripe_client,
        dispatcher=EventDispatcher(
            service.resolver,
            service.writer,
            stripe_client,
            grace_period_days=service.settings.grace_period_days,
        ),
        provisioner=(
            CustomerProvisioner(stripe_client, service.store, service.writer, service.cache)
            if stripe_client
            else None
        ),
        stripe_verifier=StripeWebhookVerifier(webhook_secret) if webhook_secret else None,
        stripe_api_key=api_key,
        stripe_webhook_secret=webhook_secret,
    )


def refresh_stripe_components(service: BillingService) -> BillingService:
    """
    Re-resolve the Stripe secrets (TTL cached) and rebuild the Stripe pieces if they changed.

    Covers a Secrets Manager failure at cold start as well as rotated secrets.
    """
    api_key, webhook_secret = get_stripe_secrets(service.settings)
    if api_key == service.stripe_api_key and webhook_secret == service.stripe_webhook_secret:
        return service

    logger.info("Stripe secrets changed, rebuilding Stripe components")
    stripe_client = service.stripe_client if api_key == service.stripe_api_key else None
    return _with_stripe(service, api_key, webhook_secret, stripe_client)


_service: Optional[BillingService] = None


def get_service() -> BillingService:
    """Service for this Lambda container, built on first use with Stripe secrets re-checked per request."""
    global _service
    if _service is None:
        _service = build_service()
    else:
        _service = refresh_stripe_components(_service)
    return _service


def set_service(service: Optional[BillingService]):
    """Replace (or clear with None) the container's service. Used in tests."""
    global _service
    _service = service
