"""
Create Checkout Session Endpoint - POST /create-checkout-session

Creates a Stripe Checkout session for the premium subscription. Web users are
identified by email; mobile users pass their app user id, which is echoed back
by Stripe as the checkout's client_reference_id.
"""

import logging

import stripe

from shared.constants import METADATA_EMAIL_KEY, METADATA_TOKEN_KEY
from shared.errors import APIError, InternalError
from shared.identity import EmailIdentity, TokenIdentity
from shared.logging_utils import configure_structured_logging, set_request_id
from shared.request_utils import get_origin, parse_json_body
from shared.response_utils import error_response, success_response
from shared.service import get_service

logger = logging.getLogger(__name__)


def handler(event, context):
    """
    Lambda handler for POST /create-checkout-session.

    Request body:
    {
        "email": "user@example.com",      (optional)
        "mobileUserId": "app-user-token"  (optional, at least one required)
    }

    Returns:
    {
        "url": "https://checkout.stripe.com/..."
    }
    """
    configure_structured_logging()
    set_request_id(event)
    origin = get_origin(event)

    service = get_service()
    if service.stripe_client is None or service.provisioner is None:
        logger.error("Stripe API key not configured")
        return InternalError("Payment system not configured", code="stripe_not_configured").to_response(origin)

    price_id = service.settings.stripe_price_id
    if not price_id:
        logger.error("STRIPE_PRICE_ID not configured")
        return error_response(500, "price_not_configured", "Pricing not configured", origin=origin)

    try:
        body = parse_json_body(event)
    except APIError as e:
        return e.to_response(origin)

    email = (body.get("email") or "").strip() or None
    mobile_user_id = (body.get("mobileUserId") or body.get("user_id") or "").strip() or None

    if email and "@" not in email:
        return error_response(400, "invalid_email", "Invalid email address", origin=origin)
    if not email and not mobile_user_id:
        return error_response(400, "missing_identity", "Provide an email or mobileUserId", origin=origin)

    base_url = service.settings.public_url
    metadata = {}
    if email:
        metadata[METADATA_EMAIL_KEY] = email.lower()
    if mobile_user_id:
        metadata[METADATA_TOKEN_KEY] = mobile_user_id

    try:
        identity = TokenIdentity(mobile_user_id) if mobile_user_id else EmailIdentity(email)
        customer_id = service.provisioner.ensure_customer(identity)

        checkout_params = {
            "mode": "subscription",
            "customer": customer_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
            "success_url": f"{base_url}/success.html?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{base_url}/index.html",
        }
        # The token travels back on the webhook and wins identity resolution
        if mobile_user_id:
            checkout_params["client_reference_id"] = mobile_user_id

        session = service.stripe_client.checkout.sessions.create(params=checkout_params)

        logger.info(f"Created checkout session {session.id} for {identity}")
        return success_response({"url": session.url}, origin=origin)

    except stripe.StripeError as e:
        logger.error(f"Stripe error creating checkout session: {e}")
        return error_response(
            500,
            "stripe_error",
            getattr(e, "user_message", None) or "Failed to create checkout session",
            origin=origin,
        )
    except Exception as e:
        logger.error(f"Error creating checkout session: {e}", exc_info=True)
        return error_response(500, "internal_error", "An error occurred", origin=origin)
