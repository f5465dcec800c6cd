"""
Confirm Session Endpoint - POST /confirm-session

Fallback reconciliation for the success page. Retrieves the Checkout Session
from Stripe and applies the same update the checkout.session.completed webhook
would, so a user returning from checkout sees premium even if the webhook is
late or was lost.
"""

import logging
import time

import stripe

from shared.errors import APIError, ForbiddenError, InternalError, NotFoundError
from shared.events import checkout_from_session, get_field
from shared.identity import identity_from_fields
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.request_utils import get_origin, parse_json_body
from shared.response_utils import error_response, success_response
from shared.service import get_service

logger = logging.getLogger(__name__)

CHECKOUT_STATUS_COMPLETE = "complete"


def handler(event, context):
    """
    Lambda handler for POST /confirm-session.

    Request body:
    {
        "session_id": "cs_...",
        "email": "user@example.com"   or   "user_id": "app-user-token"
    }

    Returns the reconciliation outcome:
    {
        "action": "checkout_subscription",
        "applied": true,
        "patch": {"is_premium": true, ...}
    }
    """
    configure_structured_logging()
    set_request_id(event)
    start_time = time.time()
    origin = get_origin(event)

    response = _process(event, origin)

    log_api_request(logger, "POST", "/confirm-session", response["statusCode"], (time.time() - start_time) * 1000)
    return response


def _process(event, origin):
    service = get_service()
    if service.stripe_client is None:
        logger.error("Stripe API key not configured")
        return InternalError("Payment system not configured", code="stripe_not_configured").to_response(origin)

    try:
        body = parse_json_body(event)
    except APIError as e:
        return e.to_response(origin)

    session_id = (body.get("session_id") or "").strip()
    if not session_id:
        return error_response(400, "missing_session_id", "session_id is required", origin=origin)

    identity = identity_from_fields(email=body.get("email"), token=body.get("user_id"))
    if identity is None:
        return error_response(400, "missing_identity", "Provide an email or user_id", origin=origin)

    try:
        session = service.stripe_client.checkout.sessions.retrieve(session_id)
    except stripe.InvalidRequestError as e:
        logger.warning(f"Checkout session {session_id} not retrievable: {e}")
        return NotFoundError("Checkout session not found", code="session_not_found").to_response(origin)
    except stripe.StripeError as e:
        logger.error(f"Stripe error retrieving checkout session {session_id}: {e}")
        return error_response(
            500,
            "stripe_error",
            getattr(e, "user_message", None) or "Failed to confirm checkout session",
            origin=origin,
        )

    if get_field(session, "status") != CHECKOUT_STATUS_COMPLETE:
        return error_response(409, "checkout_incomplete", "Checkout session is not complete", origin=origin)

    checkout = checkout_from_session(session, event_id=f"confirm:{session_id}")

    # A session may only be confirmed by the user it was created for
    owner = service.resolver.resolve(checkout.hints)
    if owner is None or owner.key != identity.key:
        logger.warning(f"Checkout session {session_id} does not belong to {identity}")
        return ForbiddenError(
            "Checkout session belongs to another user", code="identity_mismatch"
        ).to_response(origin)

    try:
        result = service.dispatcher.dispatch(checkout)
    except stripe.StripeError as e:
        logger.error(f"Stripe error confirming checkout session {session_id}: {e}")
        return error_response(
            500,
            "stripe_error",
            getattr(e, "user_message", None) or "Failed to confirm checkout session",
            origin=origin,
        )
    except Exception as e:
        logger.error(f"Error confirming checkout session {session_id}: {e}", exc_info=True)
        return error_response(500, "internal_error", "An error occurred", origin=origin)

    logger.info(f"Confirmed checkout session {session_id} for {identity} -> {result.action}")
    return success_response(
        {"action": result.action, "applied": result.applied, "patch": result.patch},
        origin=origin,
    )
