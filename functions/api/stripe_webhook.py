"""
Stripe Webhook Endpoint - POST /webhook

Handles Stripe webhook events for premium status reconciliation.
Uses Stripe signature verification over the raw body instead of API key auth.
"""

import logging
import time

import stripe

from shared.errors import APIError
from shared.events import parse_stripe_event
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.request_utils import get_header, get_raw_body
from shared.response_utils import error_response, received_response
from shared.service import get_service

logger = logging.getLogger(__name__)


def handler(event, context):
    """
    Lambda handler for Stripe webhooks.

    Handles:
    - checkout.session.completed: Record customer and subscription state
    - customer.subscription.created / updated: Translate subscription status
    - customer.subscription.deleted: Revoke premium
    - invoice.payment_failed: Start the grace window
    - invoice.paid: Close the grace window
    """
    configure_structured_logging()
    set_request_id(event)
    start_time = time.time()

    response = _process(event)

    log_api_request(logger, "POST", "/webhook", response["statusCode"], (time.time() - start_time) * 1000)
    return response


def _process(event):
    service = get_service()

    if service.stripe_verifier is None:
        logger.error("Stripe webhook secret not configured")
        return error_response(500, "stripe_not_configured", "Stripe not configured")

    # Verify over the exact bytes received - nothing is parsed before this
    try:
        stripe_event = service.stripe_verifier.verify(get_raw_body(event), get_header(event, "stripe-signature"))
    except APIError as e:
        return e.to_response()

    event_type = stripe_event["type"]
    logger.info(f"Processing Stripe event: {event_type} (id={stripe_event['id']})")

    try:
        result = service.dispatcher.dispatch(parse_stripe_event(stripe_event))
    except stripe.StripeError as e:
        # Non-2xx makes Stripe redeliver the event
        logger.error(f"Stripe error handling {event_type}: {e}")
        return error_response(500, "stripe_error", "Stripe error, please retry")
    except Exception as e:
        logger.error(f"Unexpected error handling {event_type}: {e}", exc_info=True)
        return error_response(500, "processing_failed", "Processing failed")

    logger.info(
        f"Stripe event {stripe_event['id']} -> {result.action} "
        f"(identity={result.identity or 'unresolved'}, store={'updated' if result.applied else 'skipped'})"
    )
    return received_response()
