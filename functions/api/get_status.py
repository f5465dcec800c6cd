"""
Get Status Endpoint - GET /status

Returns the billing record for a user from the authoritative store.
The local cache is never consulted here.
"""

import logging
import time

from shared.identity import identity_from_fields
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.request_utils import get_origin, get_query_param
from shared.response_utils import error_response, success_response
from shared.service import get_service

logger = logging.getLogger(__name__)


def handler(event, context):
    """
    Lambda handler for GET /status?email=... or GET /status?user_id=...

    Returns:
    {
        "user": {
            "identity": "user@example.com",
            "is_premium": true,
            "current_period_end": "2026-11-19T00:00:00+00:00",
            ...
        }
    }

    ``user`` is null when no row exists for the identity.
    """
    configure_structured_logging()
    set_request_id(event)
    start_time = time.time()
    origin = get_origin(event)

    identity = identity_from_fields(
        email=get_query_param(event, "email"),
        token=get_query_param(event, "user_id"),
    )
    if identity is None:
        response = error_response(400, "missing_identity", "Provide an email or user_id query parameter", origin=origin)
    else:
        record = get_service().store.get(identity)
        response = success_response({"user": record}, origin=origin)

    log_api_request(
        logger, "GET", "/status", response["statusCode"], (time.time() - start_time) * 1000,
        identity=str(identity) if identity else None,
    )
    return response
