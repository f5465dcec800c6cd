"""
Create Billing Portal Session Endpoint - POST /create-portal-session

Creates a Stripe Billing Portal session for subscription management.
The caller names the user by email (web) or user_id (mobile app token).
"""

import logging

import stripe

from shared.errors import APIError, InternalError, NotFoundError
from shared.identity import identity_from_fields
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.request_utils import get_origin, parse_json_body
from shared.response_utils import error_response, success_response
from shared.service import get_service

logger = logging.getLogger(__name__)


def _lookup_customer_id(service, identity) -> str | None:
    record = service.store.get(identity)
    if record and record.get("stripe_customer_id"):
        return record["stripe_customer_id"]
    # Mobile users may only exist in the local cache
    cached = service.cache.get(identity.key)
    if cached and cached.get("stripe_customer_id"):
        return cached["stripe_customer_id"]
    return None


def handler(event, context):
    """
    Lambda handler for POST /create-portal-session.

    Request body:
    {
        "email": "user@example.com"   or   "user_id": "app-user-token"
    }

    Returns:
    {
        "url": "https://billing.stripe.com/..."
    }
    """
    configure_structured_logging()
    set_request_id(event)
    origin = get_origin(event)

    service = get_service()
    if service.stripe_client is None:
        logger.error("Stripe API key not configured")
        return InternalError("Payment system not configured", code="stripe_not_configured").to_response(origin)

    try:
        body = parse_json_body(event)
    except APIError as e:
        return e.to_response(origin)

    identity = identity_from_fields(email=body.get("email"), token=body.get("user_id"))
    if identity is None:
        return error_response(400, "missing_identity", "Provide an email or user_id", origin=origin)

    stripe_customer_id = _lookup_customer_id(service, identity)
    if not stripe_customer_id:
        return NotFoundError("No billing account found. Subscribe first.", code="no_customer").to_response(origin)

    try:
        portal_session = service.stripe_client.billing_portal.sessions.create(
            params={
                "customer": stripe_customer_id,
                "return_url": f"{service.settings.public_url}/index.html",
            }
        )

        logger.info(f"Created billing portal session for {identity}")

        return success_response({"url": portal_session.url}, origin=origin)

    except stripe.StripeError as e:
        logger.error(f"Stripe error creating billing portal session: {e}")
        return error_response(
            500,
            "stripe_error",
            getattr(e, "user_message", None) or "Failed to create billing portal session",
            origin=origin,
        )
    except Exception as e:
        logger.error(f"Error creating billing portal session: {e}", exc_info=True)
        return error_response(500, "internal_error", "An error occurred", origin=origin)
