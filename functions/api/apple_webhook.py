"""
Apple Webhook Endpoint - POST /webhook-apple

Receives App Store Server Notifications V2. The body is JSON with a
``signedPayload`` JWS; its certificate chain, and that of the nested signed
transaction, are verified before any field is trusted.
"""

import logging
import time

from shared.errors import APIError
from shared.events import parse_apple_notification
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.request_utils import parse_json_body
from shared.response_utils import error_response, received_response
from shared.service import get_service

logger = logging.getLogger(__name__)


def handler(event, context):
    """Lambda handler for Apple App Store server notifications."""
    configure_structured_logging()
    set_request_id(event)
    start_time = time.time()

    response = _process(event)

    log_api_request(logger, "POST", "/webhook-apple", response["statusCode"], (time.time() - start_time) * 1000)
    return response


def _process(event):
    service = get_service()

    if service.apple_verifier is None:
        logger.error("Apple notification verification not configured")
        return error_response(500, "apple_not_configured", "Apple notifications not configured")

    try:
        body = parse_json_body(event)
        notification, transaction = service.apple_verifier.verify(body.get("signedPayload"))
    except APIError as e:
        return e.to_response()

    try:
        apple_event = parse_apple_notification(notification, transaction)
        logger.info(
            f"Processing Apple notification {apple_event.notification_type} "
            f"(uuid={apple_event.notification_uuid})"
        )
        result = service.dispatcher.dispatch(apple_event)
    except Exception as e:
        logger.error(f"Unexpected error handling Apple notification: {e}", exc_info=True)
        return error_response(500, "processing_failed", "Processing failed")

    logger.info(
        f"Apple notification {apple_event.notification_uuid} -> {result.action} "
        f"(identity={result.identity or 'unresolved'})"
    )
    return received_response()
