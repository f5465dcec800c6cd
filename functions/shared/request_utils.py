"""Shared request utilities for API handlers."""

import base64
import binascii
import json
import logging

from .errors import InvalidRequestError

logger = logging.getLogger(__name__)


def get_header(event: dict, name: str) -> str | None:
    """Case-insensitive header lookup (API Gateway preserves client casing)."""
    headers = event.get("headers") or {}
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def get_origin(event: dict) -> str | None:
    """Extract Origin header from request."""
    return get_header(event, "origin")


def get_raw_body(event: dict) -> bytes:
    """Return the request body exactly as received, as bytes.

    Signature verification must run over these bytes, so nothing here parses
    or re-serializes the payload. API Gateway base64-encodes binary bodies.
    """
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError):
            raise InvalidRequestError("Request body is not valid base64", code="invalid_body")
    if isinstance(body, bytes):
        return body
    return body.encode("utf-8")


def parse_json_body(event: dict) -> dict:
    """Decode a JSON object body, raising InvalidRequestError otherwise."""
    raw = get_raw_body(event)
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequestError("Request body must be valid JSON", code="invalid_json")
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object", code="invalid_json")
    return body


def get_query_param(event: dict, name: str) -> str | None:
    params = event.get("queryStringParameters") or {}
    value = params.get(name)
    return value.strip() if isinstance(value, str) and value.strip() else None
